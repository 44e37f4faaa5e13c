from unittest.mock import MagicMock, patch

import pytest

from app.services.stripe_service import StripeService


def test_extract_plan_id_reads_first_item():
    subscription = {"items": {"data": [{"price": {"id": "price_a"}}, {"price": {"id": "price_b"}}]}}

    assert StripeService.extract_plan_id(subscription) == "price_a"
    assert StripeService.extract_plan_id({"items": {"data": []}}) is None


def test_extract_period_falls_back_to_subscription_item():
    subscription = {
        "items": {"data": [{"current_period_start": 10, "current_period_end": 20}]},
    }

    assert StripeService.extract_period(subscription) == {"start": 10, "end": 20}


def test_extract_period_prefers_subscription_fields():
    subscription = {
        "current_period_start": 1,
        "current_period_end": 2,
        "items": {"data": [{"current_period_start": 10, "current_period_end": 20}]},
    }

    assert StripeService.extract_period(subscription) == {"start": 1, "end": 2}


@pytest.mark.parametrize("invoice, expected", [
    ({"subscription": "sub_1"}, "sub_1"),
    ({"subscription": {"id": "sub_2"}}, "sub_2"),
    ({"parent": {"subscription_details": {"subscription": "sub_3"}}}, "sub_3"),
    ({"subscription": None}, None),
    ({}, None),
])
def test_extract_invoice_subscription_id(invoice, expected):
    assert StripeService.extract_invoice_subscription_id(invoice) == expected


@pytest.mark.asyncio
async def test_get_uid_for_customer_reads_metadata():
    service = StripeService(api_key="sk_test_123")
    with patch("stripe.Customer.retrieve") as retrieve:
        retrieve.return_value = MagicMock(metadata={"uid": "u1"})

        assert await service.get_uid_for_customer("cus_123") == "u1"
        retrieve.assert_called_once_with("cus_123", api_key="sk_test_123")


@pytest.mark.asyncio
async def test_get_uid_for_customer_without_metadata():
    service = StripeService(api_key="sk_test_123")
    with patch("stripe.Customer.retrieve") as retrieve:
        retrieve.return_value = MagicMock(metadata=None)

        assert await service.get_uid_for_customer("cus_123") is None


@pytest.mark.asyncio
async def test_cancel_at_period_end_pins_api_version():
    service = StripeService(api_key="sk_test_123", api_version="2023-10-16")
    with patch("stripe.Subscription.modify") as modify:
        await service.cancel_at_period_end("sub_123")

    modify.assert_called_once_with(
        "sub_123",
        cancel_at_period_end=True,
        api_key="sk_test_123",
        stripe_version="2023-10-16"
    )
