"""
Per-platform metric calculators.

Each marketplace encodes "a completed sale" and "marketing spend" differently.
The calculators below read a platform's raw rows and emit the same
``PlatformMetrics`` tuple, after which derived ratios are computed the same way
for every platform.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional

from django.conf import settings

from .dates import normalize_platform_date

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

UBEREATS_COMPLETED_STATUS = "Completed"
GRUBHUB_ORDER_TYPE = "Prepaid Order"
DOORDASH_MARKETPLACE = "Marketplace"

_warned_doordash_statuses: set[str] = set()


def _money(value) -> Decimal:
    """None/blank -> 0; everything else through Decimal(str())."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _ratio(numerator, denominator) -> Decimal:
    if not denominator:
        return ZERO
    return numerator / denominator


@dataclass
class PlatformMetrics:
    total_orders: int = 0
    total_sales: Decimal = ZERO
    marketing_driven_sales: Decimal = ZERO
    ad_spend: Decimal = ZERO
    offer_discount_value: Decimal = ZERO
    net_payout: Decimal = ZERO
    orders_from_marketing: int = 0

    def __add__(self, other: "PlatformMetrics") -> "PlatformMetrics":
        return PlatformMetrics(
            **{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)}
        )

    @classmethod
    def combine(cls, items: Iterable["PlatformMetrics"]) -> "PlatformMetrics":
        total = cls()
        for item in items:
            total = total + item
        return total

    # Derived values are recomputed from the raw sums every time.
    @property
    def aov(self) -> Decimal:
        return _ratio(self.total_sales, Decimal(self.total_orders))

    @property
    def total_marketing_investment(self) -> Decimal:
        return self.ad_spend + self.offer_discount_value

    @property
    def marketing_roas(self) -> Decimal:
        return _ratio(self.marketing_driven_sales, self.total_marketing_investment)

    @property
    def net_payout_percent(self) -> Decimal:
        return _ratio(self.net_payout, self.total_sales) * HUNDRED

    @property
    def organic_sales(self) -> Decimal:
        return self.total_sales - self.marketing_driven_sales

    @property
    def organic_orders(self) -> int:
        return self.total_orders - self.orders_from_marketing

    @property
    def marketing_investment_percent(self) -> Decimal:
        return _ratio(self.total_marketing_investment, self.total_sales) * HUNDRED

    def as_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {f.name: getattr(self, f.name) for f in fields(self)}
        data.update(
            {
                "aov": self.aov,
                "total_marketing_investment": self.total_marketing_investment,
                "marketing_roas": self.marketing_roas,
                "net_payout_percent": self.net_payout_percent,
                "organic_sales": self.organic_sales,
                "organic_orders": self.organic_orders,
                "marketing_investment_percent": self.marketing_investment_percent,
            }
        )
        return data


METRIC_FIELDS = tuple(PlatformMetrics().as_dict())


def _ad_spend(other_payments, description) -> Decimal:
    """Other payments count as ad spend only when they carry a description."""
    if not (description or "").strip():
        return ZERO
    return abs(_money(other_payments))


# ---------------------------------------------------------------------------
# Calculators
# ---------------------------------------------------------------------------

def calculate_ubereats_metrics(rows: Iterable) -> PlatformMetrics:
    metrics = PlatformMetrics()
    for row in rows:
        metrics.net_payout += _money(row.net_payout)
        # ad charges arrive as their own rows without an order status
        metrics.ad_spend += _ad_spend(row.other_payments, row.other_payments_description)
        if (row.order_status or "").strip() != UBEREATS_COMPLETED_STATUS:
            continue

        sales = _money(row.sales_excl_tax)
        offers = _money(row.offers_on_items)
        redemptions = _money(row.delivery_offer_redemptions)

        metrics.total_orders += 1
        metrics.total_sales += sales
        metrics.offer_discount_value += abs(offers) + abs(redemptions)
        if offers < 0 or redemptions < 0:
            metrics.marketing_driven_sales += sales
            metrics.orders_from_marketing += 1
    return metrics


def doordash_completed_statuses() -> frozenset[str]:
    return frozenset(getattr(settings, "DOORDASH_COMPLETED_STATUSES", ()))


def _doordash_status(row) -> str:
    return (row.order_status or row.transaction_type or "").strip()


def reset_doordash_status_warnings() -> None:
    """Forget which unknown DoorDash statuses were already logged."""
    _warned_doordash_statuses.clear()


def _flag_unknown_doordash_status(status: str, completed: frozenset[str]) -> None:
    known = completed | frozenset(getattr(settings, "DOORDASH_NON_TERMINAL_STATUSES", ()))
    if not status or status in known or status in _warned_doordash_statuses:
        return
    _warned_doordash_statuses.add(status)
    logger.warning(
        "DoorDash status %r is not configured as completed or non-terminal; "
        "rows with it are excluded from sales",
        status,
    )


def calculate_doordash_metrics(
    rows: Iterable,
    completed_statuses: Optional[Iterable[str]] = None,
) -> PlatformMetrics:
    completed = (
        frozenset(completed_statuses)
        if completed_statuses is not None
        else doordash_completed_statuses()
    )
    metrics = PlatformMetrics()
    for row in rows:
        channel = (row.channel or "").strip()
        if channel and channel != DOORDASH_MARKETPLACE:
            continue

        metrics.net_payout += _money(row.net_total)

        status = _doordash_status(row)
        if status not in completed:
            _flag_unknown_doordash_status(status, completed)
            continue

        sales = _money(row.sales_excl_tax)
        offers = _money(row.offers_on_items)
        redemptions = _money(row.delivery_offer_redemptions)
        credits = _money(row.marketing_credits)
        third_party = _money(row.third_party_contribution)

        metrics.total_orders += 1
        metrics.total_sales += sales
        metrics.ad_spend += _ad_spend(row.other_payments, row.other_payments_description)
        metrics.offer_discount_value += abs(offers) + abs(redemptions) + abs(credits) + abs(third_party)
        # Offers and redemptions arrive negative, credits and contributions positive.
        if offers < 0 or redemptions < 0 or credits > 0 or third_party > 0:
            metrics.marketing_driven_sales += sales
            metrics.orders_from_marketing += 1
    return metrics


def calculate_grubhub_metrics(rows: Iterable) -> PlatformMetrics:
    metrics = PlatformMetrics()
    for row in rows:
        metrics.net_payout += _money(row.merchant_net_total)
        if (row.transaction_type or "").strip() != GRUBHUB_ORDER_TYPE:
            continue

        sales = _money(row.subtotal) + _money(row.subtotal_sales_tax)
        promotion = _money(row.merchant_funded_promotion)

        metrics.total_orders += 1
        metrics.total_sales += sales
        metrics.offer_discount_value += abs(promotion)
        if promotion != 0:
            metrics.marketing_driven_sales += sales
            metrics.orders_from_marketing += 1
    return metrics


CALCULATORS: Dict[str, Callable[[Iterable], PlatformMetrics]] = {
    "ubereats": calculate_ubereats_metrics,
    "doordash": calculate_doordash_metrics,
    "grubhub": calculate_grubhub_metrics,
}


def calculate_platform_metrics(platform: str, rows: Iterable) -> PlatformMetrics:
    try:
        calculator = CALCULATORS[platform]
    except KeyError:
        raise ValueError(f"Unknown platform: {platform!r}") from None
    return calculator(rows)


NATIVE_DATE_FIELDS = {
    "ubereats": "date",
    "doordash": "transaction_date",
    "grubhub": "transaction_date",
}


def filter_rows_by_date(
    rows: Iterable,
    platform: str,
    start: Optional[datetime.date] = None,
    end: Optional[datetime.date] = None,
) -> list:
    """Keep rows whose native date falls inside [start, end]; unparseable dates drop out."""
    attr = NATIVE_DATE_FIELDS[platform]
    kept = []
    for row in rows:
        if start is None and end is None:
            kept.append(row)
            continue
        day = normalize_platform_date(getattr(row, attr, None))
        if day is None:
            continue
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        kept.append(row)
    return kept
