"""Money helpers shared by models, services, and schemas."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any

from pydantic import PlainSerializer

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce a value to a Decimal rounded to two fractional digits."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


# Serialized as a decimal string with exactly two fractional digits.
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: str(to_money(v)), return_type=str, when_used="json"),
]
