from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping

from wallettrack.errors import ConfigError

CANONICAL_CURRENCY = "EUR"

DEFAULT_RATES: dict[str, Decimal] = {
    "EUR": Decimal("1"),
    "USD": Decimal("1.08"),
    "XOF": Decimal("655.957"),
}

CURRENCY_ALIASES: dict[str, str] = {
    "FCFA": "XOF",
    "XAF": "XOF",
    "EURO": "EUR",
}


@dataclass(frozen=True)
class StaticRateProvider:
    """Deterministic, in-memory FX rates.

    Rates are expressed as display currency per 1 unit of the canonical
    currency (EUR).
    """

    rates: Mapping[str, Decimal] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rates", dict(self.rates or DEFAULT_RATES))

    def get_rate(self, currency: str) -> Decimal:
        normalized = normalize_currency(currency)
        try:
            return self.rates[normalized]
        except KeyError as exc:
            raise ConfigError(f"Unsupported currency: {normalized}") from exc

    def supports(self, currency: str) -> bool:
        try:
            return normalize_currency(currency) in self.rates
        except ConfigError:
            return False

    @property
    def currencies(self) -> list[str]:
        return sorted(self.rates)


DEFAULT_PROVIDER = StaticRateProvider()


def convert_amount(
    amount: Decimal | int | float | str,
    target_currency: str,
    rate_provider: StaticRateProvider | None = None,
) -> Decimal:
    """Convert a canonical (EUR) amount into the display currency."""
    provider = rate_provider or DEFAULT_PROVIDER
    coerced_amount = _coerce_amount(amount)
    normalized_target = normalize_currency(target_currency)
    if normalized_target == CANONICAL_CURRENCY:
        return coerced_amount
    return coerced_amount * provider.get_rate(normalized_target)


def to_canonical(
    amount: Decimal | int | float | str,
    source_currency: str,
    rate_provider: StaticRateProvider | None = None,
) -> Decimal:
    """Convert a display-currency amount back into the canonical currency."""
    provider = rate_provider or DEFAULT_PROVIDER
    coerced_amount = _coerce_amount(amount)
    normalized_source = normalize_currency(source_currency)
    if normalized_source == CANONICAL_CURRENCY:
        return coerced_amount
    return coerced_amount / provider.get_rate(normalized_source)


def normalize_currency(value: str) -> str:
    if not isinstance(value, str):
        raise ConfigError("Currency code must be text.")
    normalized = value.strip().upper()
    normalized = CURRENCY_ALIASES.get(normalized, normalized)
    if len(normalized) != 3 or not normalized.isalpha():
        raise ConfigError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def _coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
