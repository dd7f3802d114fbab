"""
Currency & Tax Math
Version: 1.0

Pure functions. Amounts are handled in cents internally and returned as
decimals (floats) for storage and display.

Invalid numeric input never raises: totals fall back to 0 and rates to
DEFAULT_VAT_RATE, so a dashboard always renders.
NO DEPENDENCIES on other services.
"""

import math
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Mapping

DEFAULT_VAT_RATE = 0.15
BASE_CURRENCY = "SCR"

DEFAULT_EUR_RATE = 15.2
DEFAULT_USD_RATE = 14.1

_CURRENCY_SYMBOLS = {
    "SCR": "SCR ",
    "EUR": "€",
    "USD": "$",
}


@dataclass(frozen=True)
class Totals:
    subtotal: float
    tax_amount: float
    total: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def safe_number(value: Any, default: float = 0.0) -> float:
    """Coerce to a finite float, falling back to `default`."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_cents(amount: Any) -> int:
    try:
        return _round_half_up(Decimal(str(safe_number(amount))) * 100)
    except InvalidOperation:
        return 0


def from_cents(cents: int) -> float:
    return cents / 100


def _safe_rate(vat_rate: Any) -> Decimal:
    rate = safe_number(vat_rate, DEFAULT_VAT_RATE)
    if rate <= -1:
        rate = DEFAULT_VAT_RATE
    return Decimal(str(rate))


def _split_cents(total_cents: int, vat_rate: Any) -> int:
    """Subtotal cents of a VAT-inclusive amount."""
    return _round_half_up(Decimal(total_cents) / (Decimal(1) + _safe_rate(vat_rate)))


def calculate_totals(total: Any, vat_rate: Any = DEFAULT_VAT_RATE) -> Totals:
    """
    Decompose a VAT-inclusive total into subtotal and tax.

    >>> calculate_totals(1150, 0.15)
    Totals(subtotal=1000.0, tax_amount=150.0, total=1150.0)
    """
    total_cents = to_cents(total)
    subtotal_cents = _split_cents(total_cents, vat_rate)
    tax_cents = total_cents - subtotal_cents

    return Totals(
        subtotal=from_cents(subtotal_cents),
        tax_amount=from_cents(tax_cents),
        total=from_cents(total_cents),
    )


def calculate_input_tax(amount: Any, vat_included: bool, vat_rate: Any = DEFAULT_VAT_RATE) -> float:
    """Deductible VAT contained in an expense. Zero when VAT is not included."""
    if not vat_included:
        return 0.0
    return calculate_totals(amount, vat_rate).tax_amount


def line_total(quantity: Any, unit_price: Any) -> float:
    return safe_number(quantity) * safe_number(unit_price)


def exchange_rates(eur_rate: Any = None, usd_rate: Any = None) -> Dict[str, float]:
    """Rates converting one unit of each currency into the base currency."""
    return {
        BASE_CURRENCY: 1.0,
        "EUR": safe_number(eur_rate) or DEFAULT_EUR_RATE,
        "USD": safe_number(usd_rate) or DEFAULT_USD_RATE,
    }


def convert_to_base(amount: Any, currency: Any, rates: Mapping[str, float]) -> float:
    code = str(currency or BASE_CURRENCY)
    return safe_number(amount) * rates.get(code, 1.0)


def format_currency(amount: Any, currency: str = BASE_CURRENCY) -> str:
    """Human readable amount, e.g. 'SCR 1,150.00' or '€10.00'."""
    code = currency or BASE_CURRENCY
    symbol = _CURRENCY_SYMBOLS.get(code, f"{code} ")
    value = safe_number(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
