import httpx
import pytest

from familywallet.infrastructure.gateways.dexscreener_api import DexscreenerPriceSource

CONTRACT = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


def source_for(handler) -> DexscreenerPriceSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DexscreenerPriceSource(client=client)


async def test_first_pair_with_a_price_wins():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"pairs": [
            {"priceUsd": None},
            {"priceUsd": "not-a-number"},
            {"priceUsd": "0.9998"},
            {"priceUsd": "1.2"},
        ]})

    price = await source_for(handler).fetch_usd_price(CONTRACT)

    assert price == pytest.approx(0.9998)
    assert seen == [f"https://api.dexscreener.com/latest/dex/tokens/{CONTRACT}"]


@pytest.mark.parametrize("payload", [{"pairs": None}, {"pairs": []}, {}, ["unexpected"]])
async def test_no_usable_pair_gives_none(payload):
    price = await source_for(lambda request: httpx.Response(200, json=payload)).fetch_usd_price(CONTRACT)

    assert price is None


async def test_http_error_gives_none():
    price = await source_for(lambda request: httpx.Response(503)).fetch_usd_price(CONTRACT)

    assert price is None


async def test_transport_failure_gives_none():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    assert await source_for(handler).fetch_usd_price(CONTRACT) is None


async def test_malformed_json_gives_none():
    price = await source_for(lambda request: httpx.Response(200, content=b"<html>")).fetch_usd_price(CONTRACT)

    assert price is None
