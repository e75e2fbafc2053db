"""
Pricing Engine - subtotal, tax, delivery, total and financing for a quote.

All figures are derived from inputs on every call; nothing is cached or
patched incrementally, so the same inputs always give the same breakdown
and ``total == subtotal + tax + delivery_fee`` holds exactly.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from config import PricingConfig

logger = logging.getLogger(__name__)


class ComputationError(Exception):
    """Raised when the engine is handed values it cannot price"""
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


@dataclass(frozen=True)
class PricingBreakdown:
    """Derived pricing for one selection; never stored on its own."""
    base_price: float
    options_total: float
    subtotal: float
    tax_rate: float
    tax: float
    delivery_fee: float
    total: float
    monthly_payment: float
    apr: float
    term_months: int

    def to_dict(self) -> Dict:
        return {
            'basePrice': self.base_price,
            'optionsTotal': self.options_total,
            'subtotal': self.subtotal,
            'taxRate': self.tax_rate,
            'tax': self.tax,
            'deliveryFee': self.delivery_fee,
            'total': self.total,
            'monthlyPayment': self.monthly_payment,
            'apr': self.apr,
            'termMonths': self.term_months,
        }


def _number(value, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ComputationError(f"{field} must be a number, got {value!r}", field=field)
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise ComputationError(f"{field} must be finite", field=field)
    return value


# ============================================================================
# DELIVERY POLICIES
# ============================================================================

def estimate_miles_from_zip(zip_code: str) -> float:
    """
    Rough distance from the factory keyed on the ZIP prefix.

    Placeholder until a routing service is wired in: five miles per unit of
    the three-digit prefix, never less than 50.
    """
    prefix = ''.join(ch for ch in str(zip_code)[:3] if ch.isdigit())
    return float(max(50, 5 * int(prefix or 100)))


class FlatDeliveryFee:
    """The same fee for every ZIP code."""

    name = 'flat'

    def __init__(self, amount: float):
        self.amount = _number(amount, 'base_delivery_fee')

    def fee(self, zip_code: str) -> float:
        return self.amount

    def describe(self, zip_code: str) -> Dict:
        return {'policy': self.name, 'fee': self.fee(zip_code)}


class DistanceDeliveryFee:
    """
    Minimum fee covers the first ``included_miles``; past that the per-mile
    charge applies to the extra miles, floored at the minimum.
    """

    name = 'distance'

    def __init__(self, minimum: float, rate_per_mile: float, included_miles: float,
                 distance_lookup: Callable[[str], float] = estimate_miles_from_zip):
        self.minimum = _number(minimum, 'delivery_minimum')
        self.rate_per_mile = _number(rate_per_mile, 'delivery_rate_per_mile')
        self.included_miles = _number(included_miles, 'delivery_included_miles')
        self.distance_lookup = distance_lookup

    def miles(self, zip_code: str) -> float:
        return _number(self.distance_lookup(zip_code), 'miles')

    def fee(self, zip_code: str) -> float:
        miles = self.miles(zip_code)
        if miles <= self.included_miles:
            return self.minimum
        return max(self.minimum, (miles - self.included_miles) * self.rate_per_mile)

    def describe(self, zip_code: str) -> Dict:
        return {
            'policy': self.name,
            'fee': self.fee(zip_code),
            'miles': self.miles(zip_code),
            'ratePerMile': self.rate_per_mile,
            'minimum': self.minimum,
        }


def build_delivery_policy(config: PricingConfig):
    """Delivery policy named by ``config.delivery_policy``"""
    logger.debug(f"Delivery policy: {config.delivery_policy}")
    if config.delivery_policy == 'distance':
        return DistanceDeliveryFee(
            minimum=config.base_delivery_fee,
            rate_per_mile=config.delivery_rate_per_mile,
            included_miles=config.delivery_included_miles,
        )
    return FlatDeliveryFee(config.base_delivery_fee)


# ============================================================================
# ENGINE
# ============================================================================

class PricingEngine:
    """Pure pricing over a model, its selected options and a ZIP code."""

    def __init__(self, config: PricingConfig, delivery_policy=None, logger: logging.Logger = None):
        self.config = config
        self.delivery_policy = delivery_policy or build_delivery_policy(config)
        self.logger = logger or logging.getLogger(__name__)

    def compute_base_price(self, model) -> float:
        if model is None:
            return 0.0
        base_price = _number(model.base_price, 'base_price')
        if base_price < 0:
            raise ComputationError("base_price must not be negative", field='base_price')
        return base_price

    def compute_subtotal(self, model, selected_options: Iterable) -> float:
        """Base price plus every option price; negative deltas reduce it."""
        return self.compute_base_price(model) + self.compute_options_total(selected_options)

    def compute_options_total(self, selected_options: Iterable) -> float:
        total = 0.0
        for option in selected_options or ():
            total += _number(option.price, f"price of option {option.id!r}")
        return total

    def compute_delivery_fee(self, zip_code: Optional[str]) -> float:
        """0 until a ZIP code is supplied, then whatever the policy charges."""
        if zip_code is None or not str(zip_code).strip():
            return 0.0
        return _number(self.delivery_policy.fee(str(zip_code).strip()), 'delivery_fee')

    def compute_tax(self, subtotal: float, tax_rate: float = None) -> float:
        rate = self.config.tax_rate if tax_rate is None else tax_rate
        return _number(subtotal, 'subtotal') * _number(rate, 'tax_rate')

    def compute_total(self, subtotal: float, tax: float, delivery_fee: float) -> float:
        return (_number(subtotal, 'subtotal')
                + _number(tax, 'tax')
                + _number(delivery_fee, 'delivery_fee'))

    def compute_monthly_payment(self, total: float, apr: float = None, years: float = None) -> float:
        """
        Fixed monthly installment for financing ``total``.

        n = round(years * 12), at least 1; r = apr / 12. Amortized when r > 0,
        straight division otherwise. A total of zero or less finances nothing
        and returns 0.0.
        """
        total = _number(total, 'total')
        apr = _number(self.config.financing_apr if apr is None else apr, 'apr')
        years = _number(self.config.financing_term_years if years is None else years, 'years')
        if apr < 0:
            raise ComputationError("apr must not be negative", field='apr')

        if total <= 0:
            return 0.0

        n = max(1, round(years * 12))
        r = apr / 12
        # 1 - (1 + r) ** -n, kept accurate for rates too small to move 1 + r
        denominator = -math.expm1(-n * math.log1p(r)) if r > 0 else 0.0
        if denominator > 0:
            return total * r / denominator
        return total / n

    def breakdown(self, model, selected_options: Iterable, delivery_fee: float) -> PricingBreakdown:
        """Full breakdown for an already-determined delivery fee"""
        selected_options = list(selected_options or ())
        subtotal = self.compute_subtotal(model, selected_options)
        options_total = self.compute_options_total(selected_options)
        tax = self.compute_tax(subtotal)
        delivery_fee = _number(delivery_fee, 'delivery_fee')
        total = self.compute_total(subtotal, tax, delivery_fee)

        return PricingBreakdown(
            base_price=self.compute_base_price(model),
            options_total=options_total,
            subtotal=subtotal,
            tax_rate=self.config.tax_rate,
            tax=tax,
            delivery_fee=delivery_fee,
            total=total,
            monthly_payment=self.compute_monthly_payment(total),
            apr=self.config.financing_apr,
            term_months=self.config.financing_term_months,
        )

    def price(self, model, selected_options: Iterable, zip_code: Optional[str] = None) -> PricingBreakdown:
        """Breakdown with the delivery fee looked up from ``zip_code``"""
        breakdown = self.breakdown(model, selected_options, self.compute_delivery_fee(zip_code))
        self.logger.debug(
            f"Priced {getattr(model, 'id', None)!r}: subtotal={breakdown.subtotal:.2f} "
            f"total={breakdown.total:.2f}"
        )
        return breakdown
