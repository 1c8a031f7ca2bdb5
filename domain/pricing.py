"""Pricing resolution: pricing configuration + guest count -> PriceQuote"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from domain.enums import PricingType
from domain.exceptions import InvalidGuestCount
from domain.value_objects import PriceQuote, PricingConfiguration, PricingTier

CURRENCY_QUANTUM = Decimal("0.01")


def round_currency(amount: Decimal) -> Decimal:
    """Round half-up to the smallest currency unit"""
    return Decimal(amount).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


def pick_tier(tiers: List[PricingTier], guest_count: int) -> Optional[PricingTier]:
    """First tier containing the count, else the nearest tier.

    A count that falls in a gap or above every tier takes the tier whose
    upper bound sits closest below it; a count below every tier takes the
    lowest tier.
    """
    ordered = sorted(tiers, key=lambda tier: tier.min_guests)
    if not ordered:
        return None

    for tier in ordered:
        if tier.contains(guest_count):
            return tier

    below = [tier for tier in ordered if tier.max_guests < guest_count]
    if below:
        return max(below, key=lambda tier: tier.max_guests)
    return ordered[0]


class PricingResolver:
    """Domain service turning a pricing configuration into a quote"""

    def __init__(self, currency: str = "EUR"):
        self.currency = currency

    def resolve(self, config: PricingConfiguration, guest_count: int) -> PriceQuote:
        if isinstance(guest_count, bool) or not isinstance(guest_count, int) or guest_count < 1:
            raise InvalidGuestCount(guest_count)
        config.validate_for_type()

        if config.pricing_type == PricingType.GROUP:
            return self._resolve_group(config, guest_count)
        if config.pricing_type == PricingType.CUSTOM:
            return self._resolve_custom(config, guest_count)
        return self._resolve_fixed(config, guest_count)

    def _resolve_fixed(self, config: PricingConfiguration, guest_count: int) -> PriceQuote:
        return PriceQuote(
            pricing_type=PricingType.FIXED,
            guest_count=guest_count,
            unit_price=round_currency(config.price),
            chargeable_total=round_currency(config.price * guest_count),
            descriptor="per person",
            currency=self.currency,
        )

    def _resolve_group(self, config: PricingConfiguration, guest_count: int) -> PriceQuote:
        group_size = max(config.group_size or 1, 1)
        # Total is the group price whatever the party size
        return PriceQuote(
            pricing_type=PricingType.GROUP,
            guest_count=guest_count,
            unit_price=round_currency(config.group_price / group_size),
            chargeable_total=round_currency(config.group_price),
            descriptor=f"for up to {group_size} guests",
            currency=self.currency,
        )

    def _resolve_custom(self, config: PricingConfiguration, guest_count: int) -> PriceQuote:
        tier = pick_tier(config.custom_pricing, guest_count)
        return PriceQuote(
            pricing_type=PricingType.CUSTOM,
            guest_count=guest_count,
            unit_price=round_currency(tier.price),
            chargeable_total=round_currency(tier.price * guest_count),
            descriptor=f"per person ({tier.min_guests}-{tier.max_guests} guests)",
            currency=self.currency,
            tier=tier,
        )
