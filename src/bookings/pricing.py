"""
Ticket pricing for the event.

Every pass type has a unit ``base`` price and a bulk rule: at or above
``bulk_threshold`` tickets the unit price becomes the flat ``bulk_price``.
The engine is pure, so booking creation, payment order creation and any
re-pricing all agree on the same amount.
"""

from typing import Dict

from src.bookings.schemas import PassType, PriceBreakdown
from src.exceptions import InvalidRequestError

TICKET_PRICING: Dict[str, Dict[str, int]] = {
    PassType.FEMALE.value: {"base": 399, "bulk_threshold": 6, "bulk_price": 300},
    PassType.COUPLE.value: {"base": 699, "bulk_threshold": 6, "bulk_price": 300},
    PassType.KIDS.value: {"base": 99, "bulk_threshold": 6, "bulk_price": 300},
    PassType.FAMILY.value: {"base": 1300, "bulk_threshold": 6, "bulk_price": 300},
    PassType.MALE.value: {"base": 699, "bulk_threshold": 6, "bulk_price": 300},
}

# Names written by older booking forms
LEGACY_PASS_TYPES = {
    "kid": PassType.KIDS.value,
    "family4": PassType.FAMILY.value,
}


class UnsupportedPassTypeError(InvalidRequestError):
    error = "Unsupported pass type"


def resolve_pass_type(pass_type) -> str:
    """Normalize a stored or submitted pass type to one of the priced categories."""
    if isinstance(pass_type, PassType):
        return pass_type.value
    name = str(pass_type or "").strip().lower()
    name = LEGACY_PASS_TYPES.get(name, name)
    if name not in TICKET_PRICING:
        raise UnsupportedPassTypeError(
            f"Unsupported pass_type: {pass_type}",
            details={"valid_options": sorted(TICKET_PRICING)},
        )
    return name


def _coerce_quantity(quantity) -> int:
    try:
        return max(1, int(quantity))
    except (TypeError, ValueError):
        raise InvalidRequestError(
            "num_tickets must be a whole number",
            details={"received": quantity},
        )


def calculate_ticket_price(pass_type, quantity) -> PriceBreakdown:
    """Price ``quantity`` tickets of ``pass_type`` with the bulk rule applied"""
    pricing = TICKET_PRICING[resolve_pass_type(pass_type)]
    quantity = _coerce_quantity(quantity)

    if pricing["bulk_threshold"] and quantity >= pricing["bulk_threshold"]:
        return PriceBreakdown(
            base_price=pricing["base"],
            final_price=pricing["bulk_price"],
            discount_applied=True,
            total_amount=pricing["bulk_price"] * quantity,
            savings=(pricing["base"] - pricing["bulk_price"]) * quantity,
        )

    return PriceBreakdown(
        base_price=pricing["base"],
        final_price=pricing["base"],
        discount_applied=False,
        total_amount=pricing["base"] * quantity,
        savings=0,
    )


def pricing_table() -> Dict[str, Dict[str, int]]:
    return {name: dict(rule) for name, rule in TICKET_PRICING.items()}
