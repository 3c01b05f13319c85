import datetime
from decimal import Decimal

import pytest

from deliveryMetrics.utils.platform_metrics import (
    PlatformMetrics,
    calculate_doordash_metrics,
    calculate_grubhub_metrics,
    calculate_platform_metrics,
    calculate_ubereats_metrics,
    filter_rows_by_date,
    reset_doordash_status_warnings,
)

from tests.factories import (
    DoordashTransactionFactory,
    GrubhubTransactionFactory,
    UberEatsTransactionFactory,
)


def test_ubereats_completed_order_with_item_offer():
    row = UberEatsTransactionFactory.build(
        order_status="Completed",
        sales_excl_tax=Decimal("50"),
        offers_on_items=Decimal("-5"),
        other_payments=Decimal("0"),
        other_payments_description=None,
        net_payout=Decimal("45"),
    )

    metrics = calculate_ubereats_metrics([row])

    assert metrics.total_orders == 1
    assert metrics.total_sales == Decimal("50")
    assert metrics.offer_discount_value == Decimal("5")
    assert metrics.ad_spend == 0
    assert metrics.marketing_driven_sales == Decimal("50")
    assert metrics.orders_from_marketing == 1
    assert metrics.net_payout == Decimal("45")
    assert metrics.aov == Decimal("50")
    assert metrics.total_marketing_investment == Decimal("5")
    assert metrics.marketing_roas == Decimal("10")
    assert metrics.net_payout_percent == Decimal("90")


def test_ubereats_described_other_payment_is_ad_spend():
    rows = [
        UberEatsTransactionFactory.build(
            sales_excl_tax=Decimal("30"),
            other_payments=Decimal("-12.50"),
            other_payments_description="Ad Spend",
        ),
        UberEatsTransactionFactory.build(
            sales_excl_tax=Decimal("30"),
            other_payments=Decimal("-4"),
            other_payments_description="",
        ),
    ]

    metrics = calculate_ubereats_metrics(rows)

    assert metrics.ad_spend == Decimal("12.50")
    assert metrics.marketing_driven_sales == 0


def test_ubereats_non_completed_rows_only_count_toward_payout():
    row = UberEatsTransactionFactory.build(
        order_status="Canceled",
        sales_excl_tax=Decimal("25"),
        net_payout=Decimal("-3"),
    )

    metrics = calculate_ubereats_metrics([row])

    assert metrics.total_orders == 0
    assert metrics.total_sales == 0
    assert metrics.net_payout == Decimal("-3")


def test_ubereats_ad_rows_without_order_status_count_as_ad_spend():
    rows = [
        UberEatsTransactionFactory.build(sales_excl_tax=Decimal("50"), net_payout=Decimal("40")),
        UberEatsTransactionFactory.build(
            order_status=None,
            sales_excl_tax=None,
            other_payments=Decimal("25"),
            other_payments_description="Ad Spend",
            net_payout=Decimal("-25"),
        ),
    ]

    metrics = calculate_ubereats_metrics(rows)

    assert metrics.total_orders == 1
    assert metrics.ad_spend == Decimal("25")
    assert metrics.net_payout == Decimal("15")
    assert metrics.total_marketing_investment == Decimal("25")
    assert metrics.marketing_roas == 0


def test_grubhub_adjustment_counts_in_payout_only():
    row = GrubhubTransactionFactory.build(
        transaction_type="Order Adjustment",
        subtotal=Decimal("0"),
        merchant_net_total=Decimal("-12"),
    )

    metrics = calculate_grubhub_metrics([row])

    assert metrics.total_orders == 0
    assert metrics.total_sales == 0
    assert metrics.net_payout == Decimal("-12")
    assert metrics.aov == 0
    assert metrics.marketing_roas == 0


def test_grubhub_sales_include_tax_and_promotions_drive_marketing():
    rows = [
        GrubhubTransactionFactory.build(
            subtotal=Decimal("20"),
            subtotal_sales_tax=Decimal("2"),
            merchant_funded_promotion=Decimal("-3"),
        ),
        GrubhubTransactionFactory.build(subtotal=Decimal("10"), subtotal_sales_tax=Decimal("1")),
    ]

    metrics = calculate_grubhub_metrics(rows)

    assert metrics.total_orders == 2
    assert metrics.total_sales == Decimal("33")
    assert metrics.offer_discount_value == Decimal("3")
    assert metrics.marketing_driven_sales == Decimal("22")
    assert metrics.organic_sales == Decimal("11")
    assert metrics.organic_orders == 1


def test_doordash_marketing_credit_marks_order_as_marketing_driven():
    rows = [
        DoordashTransactionFactory.build(
            sales_excl_tax=Decimal("40"),
            marketing_credits=Decimal("5"),
            net_total=Decimal("30"),
        ),
        DoordashTransactionFactory.build(sales_excl_tax=Decimal("20"), net_total=Decimal("15")),
    ]

    metrics = calculate_doordash_metrics(rows)

    assert metrics.total_orders == 2
    assert metrics.total_sales == Decimal("60")
    assert metrics.marketing_driven_sales == Decimal("40")
    assert metrics.offer_discount_value == Decimal("5")
    assert metrics.net_payout == Decimal("45")


def test_doordash_skips_non_marketplace_channels():
    rows = [
        DoordashTransactionFactory.build(channel="Storefront", sales_excl_tax=Decimal("99"), net_total=Decimal("90")),
        DoordashTransactionFactory.build(channel="Marketplace", sales_excl_tax=Decimal("10")),
    ]

    metrics = calculate_doordash_metrics(rows)

    assert metrics.total_orders == 1
    assert metrics.total_sales == Decimal("10")
    assert metrics.net_payout == Decimal("15")


def test_doordash_completed_statuses_come_from_settings(settings):
    settings.DOORDASH_COMPLETED_STATUSES = ["Fulfilled"]
    rows = [
        DoordashTransactionFactory.build(order_status="Fulfilled", sales_excl_tax=Decimal("12")),
        DoordashTransactionFactory.build(order_status="Delivered", sales_excl_tax=Decimal("8")),
    ]

    metrics = calculate_doordash_metrics(rows)

    assert metrics.total_orders == 1
    assert metrics.total_sales == Decimal("12")


def test_doordash_status_falls_back_to_transaction_type():
    row = DoordashTransactionFactory.build(order_status=None, transaction_type="Order", sales_excl_tax=Decimal("9"))

    metrics = calculate_doordash_metrics([row], completed_statuses={"Order"})

    assert metrics.total_orders == 1


def test_doordash_unknown_status_is_logged_once(caplog):
    rows = [
        DoordashTransactionFactory.build(order_status="Teleported"),
        DoordashTransactionFactory.build(order_status="Teleported"),
    ]

    with caplog.at_level("WARNING", logger="deliveryMetrics.utils.platform_metrics"):
        metrics = calculate_doordash_metrics(rows, completed_statuses={"Delivered"})

    assert metrics.total_orders == 0
    assert sum("Teleported" in record.getMessage() for record in caplog.records) == 1

    reset_doordash_status_warnings()
    with caplog.at_level("WARNING", logger="deliveryMetrics.utils.platform_metrics"):
        calculate_doordash_metrics(rows[:1], completed_statuses={"Delivered"})

    assert sum("Teleported" in record.getMessage() for record in caplog.records) == 2


def test_empty_inputs_yield_zero_metrics_without_division_errors():
    for platform in ("ubereats", "doordash", "grubhub"):
        metrics = calculate_platform_metrics(platform, [])
        assert metrics == PlatformMetrics()
        assert metrics.aov == 0
        assert metrics.marketing_roas == 0
        assert metrics.net_payout_percent == 0
        assert metrics.marketing_investment_percent == 0


def test_unknown_platform_is_rejected():
    with pytest.raises(ValueError):
        calculate_platform_metrics("postmates", [])


def test_bounds_hold_for_mixed_rows():
    rows = [
        UberEatsTransactionFactory.build(offers_on_items=Decimal("-2"), sales_excl_tax=Decimal("10")),
        UberEatsTransactionFactory.build(order_status="Refunded", net_payout=Decimal("-20")),
        UberEatsTransactionFactory.build(sales_excl_tax=Decimal("0")),
    ]

    metrics = calculate_ubereats_metrics(rows)

    assert metrics.total_orders >= metrics.orders_from_marketing >= 0
    assert metrics.marketing_roas >= 0
    assert metrics.net_payout_percent.is_finite()


def test_sums_are_combined_before_ratios():
    a = PlatformMetrics(total_orders=1, total_sales=Decimal("100"), marketing_driven_sales=Decimal("100"),
                        offer_discount_value=Decimal("10"))
    b = PlatformMetrics(total_orders=1, total_sales=Decimal("100"), marketing_driven_sales=Decimal("100"),
                        offer_discount_value=Decimal("100"))

    combined = PlatformMetrics.combine([a, b])

    assert a.marketing_roas == 10
    assert b.marketing_roas == 1
    assert round(combined.marketing_roas, 3) == Decimal("1.818")


def test_filter_rows_by_native_date():
    rows = [
        UberEatsTransactionFactory.build(date="10/5/25"),
        UberEatsTransactionFactory.build(date="10/6/25"),
        UberEatsTransactionFactory.build(date="not a date"),
    ]

    kept = filter_rows_by_date(rows, "ubereats", start=datetime.date(2025, 10, 6), end=datetime.date(2025, 10, 12))

    assert [row.date for row in kept] == ["10/6/25"]
    assert len(filter_rows_by_date(rows, "ubereats")) == 3
