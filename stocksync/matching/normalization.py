import re
from decimal import Decimal, InvalidOperation

DECIMAL_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def normalize_code(value: object | None) -> str:
    if value is None:
        return ""
    return str(value).strip()


def blank_to_none(value: str | None) -> str | None:
    clean = normalize_code(value)
    return clean or None


def parse_decimal(value: object | None) -> Decimal | None:
    """Locale-invariant decimal: period separator, commas read as thousands separators."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if value == value and abs(value) != float("inf") else None

    text = str(value).strip().replace(",", "")
    if not DECIMAL_RE.fullmatch(text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None
