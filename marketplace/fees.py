"""
Platform fee split and minor-unit conversion.

Prices are Decimals in major units (rupees). The platform keeps 20%, the
interviewer gets the rest; both parts are rounded half-up to the currency's
minor unit and always sum to the gross amount.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

PLATFORM_FEE_RATE = Decimal("0.20")

# Stripe's zero-decimal currencies (amounts are already in the smallest unit)
ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})


@dataclass(frozen=True)
class FeeSplit:
    """Gross amount and how it divides between platform and interviewer."""

    amount: Decimal
    platform_fee: Decimal
    interviewer_amount: Decimal
    currency: str


def currency_exponent(currency: str) -> int:
    """Number of decimal places of the currency's minor unit."""
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def quantize_amount(value: Decimal | int | str, currency: str) -> Decimal:
    """Round half-up to the currency's minor unit."""
    quantum = Decimal(1).scaleb(-currency_exponent(currency))
    return Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def compute_fee_split(
    price: Decimal | int | str,
    currency: str,
    fee_rate: Decimal = PLATFORM_FEE_RATE,
) -> FeeSplit:
    """
    Split a slot price into platform fee and interviewer payout.

    Args:
        price: Gross price in major units
        currency: ISO-4217 code
        fee_rate: Platform share, 0 <= fee_rate <= 1

    Returns:
        FeeSplit where platform_fee + interviewer_amount == amount

    Raises:
        ValueError: On a negative price or an out-of-range fee rate

    Example:
        >>> compute_fee_split(Decimal("333"), "INR")
        FeeSplit(amount=Decimal('333.00'), platform_fee=Decimal('66.60'), interviewer_amount=Decimal('266.40'), currency='INR')
    """
    amount = quantize_amount(price, currency)
    if amount < 0:
        raise ValueError(f"Price must be non-negative, got {price}")
    if not Decimal(0) <= fee_rate <= Decimal(1):
        raise ValueError(f"Fee rate must be between 0 and 1, got {fee_rate}")

    platform_fee = quantize_amount(amount * fee_rate, currency)
    interviewer_amount = amount - platform_fee

    return FeeSplit(
        amount=amount,
        platform_fee=platform_fee,
        interviewer_amount=interviewer_amount,
        currency=currency.upper(),
    )


def to_minor_units(amount: Decimal | int | str, currency: str) -> int:
    """
    Convert a major-unit amount to the provider's smallest unit.

    >>> to_minor_units(Decimal("500.00"), "INR")
    50000
    """
    quantized = quantize_amount(amount, currency)
    if quantized < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    return int(quantized.scaleb(currency_exponent(currency)))
