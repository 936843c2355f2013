import re

from familywallet.core.errors import InvalidAmount

# Plain non-negative decimal: "1", "1.5", ".5", "1." (no sign, exponent or spaces)
_AMOUNT_RE = re.compile(r"([0-9]*)(?:\.([0-9]*))?")

MAX_DECIMALS = 255  # uint8


def _split(amount: str):
    if not isinstance(amount, str):
        raise InvalidAmount("Amount must be a decimal string")

    match = _AMOUNT_RE.fullmatch(amount)
    if not match:
        raise InvalidAmount(f"Not a valid non-negative decimal: {amount!r}")

    whole, frac = match.group(1), match.group(2) or ""
    if not whole and not frac:
        raise InvalidAmount(f"Not a valid non-negative decimal: {amount!r}")
    return whole, frac


def validate_amount(amount: str) -> None:
    """Syntax check only; precision needs the token's decimals."""
    _split(amount)


def parse_units(amount: str, decimals: int) -> int:
    """
    Convert a human decimal string into base units without going through floats.
    Raises InvalidAmount if the string is malformed or more precise than the token.
    """
    if not 0 <= decimals <= MAX_DECIMALS:
        raise InvalidAmount(f"Unsupported token decimals: {decimals}")

    whole, frac = _split(amount)
    if len(frac) > decimals:
        raise InvalidAmount(f"Amount {amount} has more than {decimals} fractional digits")

    scale = 10 ** decimals
    return int(whole or "0") * scale + int(frac.ljust(decimals, "0") or "0")


def format_units(value: int, decimals: int) -> str:
    """Base units to a decimal string, trailing fractional zeros trimmed."""
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** decimals)
    if frac == 0:
        return f"{sign}{whole}"
    digits = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{digits}"
