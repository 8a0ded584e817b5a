# neyma/services/pricing.py
"""
How the committed order total is derived from the cart subtotal.

The storefront UI has shown a tax/shipping breakdown while the stored
total was the bare subtotal. The policy is configurable
(`CHECKOUT_PRICING`); the default commits the subtotal.
"""

from dataclasses import dataclass
from typing import Protocol

from neyma.core.config import Settings


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: float
    shipping: float
    tax: float
    total: float


class OrderPricing(Protocol):
    def breakdown(self, subtotal: float) -> PriceBreakdown: ...


class SubtotalPricing:
    """Total = cart subtotal. No tax or shipping lines."""

    def breakdown(self, subtotal: float) -> PriceBreakdown:
        return PriceBreakdown(subtotal=subtotal, shipping=0.0, tax=0.0, total=subtotal)


class TaxAndShippingPricing:
    """
    Total = subtotal + shipping + subtotal * tax_rate.

    Shipping is waived once the subtotal reaches `free_shipping_threshold`.
    Defaults: 7.5% VAT, NGN 2,500 shipping, free from NGN 50,000.
    """

    def __init__(
        self,
        tax_rate: float = 0.075,
        shipping_fee: float = 2500,
        free_shipping_threshold: float = 50000,
    ) -> None:
        self.tax_rate = tax_rate
        self.shipping_fee = shipping_fee
        self.free_shipping_threshold = free_shipping_threshold

    def breakdown(self, subtotal: float) -> PriceBreakdown:
        shipping = 0.0 if subtotal >= self.free_shipping_threshold else float(self.shipping_fee)
        tax = round(subtotal * self.tax_rate, 2)
        return PriceBreakdown(
            subtotal=subtotal,
            shipping=shipping,
            tax=tax,
            total=subtotal + shipping + tax,
        )


def pricing_from_settings(settings: Settings) -> OrderPricing:
    if settings.CHECKOUT_PRICING == "tax_and_shipping":
        return TaxAndShippingPricing(
            tax_rate=settings.TAX_RATE,
            shipping_fee=settings.SHIPPING_FEE,
            free_shipping_threshold=settings.FREE_SHIPPING_THRESHOLD,
        )
    return SubtotalPricing()
