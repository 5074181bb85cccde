from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from wallettrack.currency_conversion import normalize_currency

CURRENCY_SYMBOLS = {
    "EUR": "€",
    "USD": "$",
    "XOF": "FCFA",
}

# XOF has no minor unit
MINOR_UNITS = {
    "EUR": 2,
    "USD": 2,
    "XOF": 0,
}

COMPACT_STEPS = (
    (Decimal("1000000000"), "B"),
    (Decimal("1000000"), "M"),
    (Decimal("1000"), "K"),
)


def quantize_amount(amount: Decimal, currency: str) -> Decimal:
    places = MINOR_UNITS.get(normalize_currency(currency), 2)
    exponent = Decimal(1).scaleb(-places)
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal, currency: str, compact: bool = False) -> str:
    """Render a converted amount with its currency symbol.

    Symbols follow the amount with a space ("1,234.50 €", "656 FCFA"),
    except the dollar which leads ("$1,234.50"). ``compact`` shortens large
    values to one decimal with a K/M/B suffix.
    """
    code = normalize_currency(currency)
    amount = Decimal(amount)
    negative = amount < 0
    magnitude = abs(amount)

    if compact:
        body = _compact(magnitude, code)
    else:
        places = MINOR_UNITS.get(code, 2)
        body = f"{quantize_amount(magnitude, code):,.{places}f}"

    sign = "-" if negative and body.strip("0.,KMB") else ""
    symbol = CURRENCY_SYMBOLS.get(code, code)
    if code == "USD":
        return f"{sign}{symbol}{body}"
    return f"{sign}{body} {symbol}"


def format_signed(amount: Decimal, currency: str) -> str:
    """Like ``format_amount`` but always shows the sign of non-zero amounts."""
    formatted = format_amount(amount, currency)
    if Decimal(amount) > 0:
        return f"+{formatted}"
    return formatted


def _compact(magnitude: Decimal, currency: str) -> str:
    for threshold, suffix in COMPACT_STEPS:
        if magnitude >= threshold:
            scaled = (magnitude / threshold).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
            text = f"{scaled:f}"
            if text.endswith(".0"):
                text = text[:-2]
            return f"{text}{suffix}"
    places = MINOR_UNITS.get(currency, 2)
    return f"{quantize_amount(magnitude, currency):,.{places}f}"
