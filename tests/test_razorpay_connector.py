"""Tests for the Razorpay connector with a mocked SDK client."""

from unittest.mock import MagicMock

import pytest
from razorpay.errors import BadRequestError, ServerError

from fee_ledger.connectors import OrderRequest, RazorpayConnector
from fee_ledger.exceptions import GatewayRequestError


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def connector(client):
    return RazorpayConnector(key_id="rzp_test_id", key_secret="rzp_test_secret", client=client)


class TestCreateOrder:
    """Tests for order creation."""

    def test_create_order(self, connector, client):
        """Orders are created with automatic capture and mapped to OrderHandle."""
        client.order.create.return_value = {
            "id": "order_abc",
            "entity": "order",
            "amount": 250000,
            "currency": "INR",
            "receipt": "fee_1",
            "status": "created",
            "notes": {"feeId": "fee-1"},
        }

        order = connector.create_order(
            OrderRequest(amount=250000, currency="inr", receipt="fee_1", notes={"feeId": "fee-1"})
        )

        client.order.create.assert_called_once_with(data={
            "amount": 250000,
            "currency": "INR",
            "receipt": "fee_1",
            "payment_capture": 1,
            "notes": {"feeId": "fee-1"},
        })
        assert order.id == "order_abc"
        assert order.amount == 250000
        assert order.notes == {"feeId": "fee-1"}
        assert order.raw_provider_response["entity"] == "order"

    def test_create_order_empty_notes(self, connector, client):
        """Razorpay returns an empty list for missing notes; it maps to a dict."""
        client.order.create.return_value = {"id": "order_abc", "amount": 100, "notes": []}

        order = connector.create_order(OrderRequest(amount=100, receipt="fee_1"))

        assert order.notes == {}
        assert order.currency == "INR"

    @pytest.mark.parametrize("error", [BadRequestError("bad amount"), ServerError("down"), ConnectionError("reset")])
    def test_sdk_errors_wrapped(self, connector, client, error):
        """SDK and network errors surface as GatewayRequestError."""
        client.order.create.side_effect = error

        with pytest.raises(GatewayRequestError):
            connector.create_order(OrderRequest(amount=100, receipt="fee_1"))


class TestFetchPayment:
    """Tests for payment lookups."""

    def test_fetch_payment(self, connector, client):
        """Gateway payments are mapped to GatewayPayment."""
        client.payment.fetch.return_value = {
            "id": "pay_1",
            "order_id": "order_abc",
            "amount": 150000,
            "currency": "INR",
            "status": "captured",
            "method": "upi",
            "created_at": 1760000000,
        }

        payment = connector.fetch_payment("pay_1")

        client.payment.fetch.assert_called_once_with("pay_1")
        assert payment.amount == 150000
        assert payment.order_id == "order_abc"
        assert payment.method == "upi"

    def test_fetch_payment_error(self, connector, client):
        """A rejected lookup raises GatewayRequestError."""
        client.payment.fetch.side_effect = BadRequestError("The id provided does not exist")

        with pytest.raises(GatewayRequestError):
            connector.fetch_payment("pay_missing")


class TestHealthCheck:
    """Tests for the health check."""

    def test_configured(self, connector):
        """Configured keys report ok."""
        assert connector.health_check() == {"ok": True, "provider": "razorpay"}

    def test_unconfigured(self, client, monkeypatch):
        """Missing keys report not ok."""
        monkeypatch.delenv("RAZORPAY_KEY_ID", raising=False)
        monkeypatch.delenv("RAZORPAY_KEY_SECRET", raising=False)
        assert RazorpayConnector(client=client).health_check()["ok"] is False
