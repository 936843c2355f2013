import sys
import os
import asyncio

# Add project root to path
sys.path.append(os.getcwd())

try:
    from familywallet.core.token_registry import AVAILABLE_TOKENS
    from familywallet.core.use_cases.key_vault import KeyVault
    from familywallet.core.use_cases.units import format_units, parse_units
    from familywallet.infrastructure.kms.local_kms import LocalKms
    from familywallet.api.main import app
    print("✅ All imports successful.")
except Exception as e:
    print(f"❌ Import failed: {e}")
    sys.exit(1)


# Vault round trip against a throwaway local master key
async def check_vault():
    try:
        vault = KeyVault(LocalKms(os.urandom(32)))
        key_hex = "0x" + "11" * 32
        sealed = await vault.encrypt(key_hex)
        with await vault.decrypt(sealed.encrypted_data_b64, sealed.encrypted_dek_b64) as secret:
            ok = secret.reveal_hex() == key_hex
        if ok and secret.wiped:
            print("✅ Key vault round trip passed, buffer wiped.")
        else:
            print("❌ Key vault round trip returned a different key or left it in memory")
    except Exception as e:
        print(f"❌ Key vault raised exception: {type(e).__name__}")


def check_units():
    usdc = AVAILABLE_TOKENS.by_symbol("USDC")
    try:
        raw = parse_units("12.5", usdc.decimals)
        if raw == 12_500_000 and format_units(raw, usdc.decimals) == "12.5":
            print("✅ Unit conversion basic test passed (USDC, 6 decimals).")
        else:
            print(f"❌ Unit conversion failed, got {raw}")
    except Exception as e:
        print(f"❌ Unit conversion raised exception: {e}")


if __name__ == "__main__":
    check_units()
    asyncio.run(check_vault())
