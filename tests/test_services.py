"""Tests for the order and fee query service layer."""

import dataclasses
import time
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from fee_ledger.connectors import OrderHandle, SimulatorConnector, SimulatorConfig
from fee_ledger.exceptions import (
    FeeAccountNotFoundError,
    GatewayRequestError,
    GatewayTimeoutError,
    InvalidAmountError,
)
from fee_ledger.services import (
    FeeAccountService,
    OrderService,
    build_receipt,
    to_minor_units,
)


class TestAmountConversion:
    """Tests for rupee to paise conversion."""

    def test_whole_rupees(self):
        """Whole amounts scale by one hundred."""
        assert to_minor_units(Decimal("2000")) == 200000

    def test_rounds_half_up(self):
        """Fractions of a paisa round half up."""
        assert to_minor_units(Decimal("10.005")) == 1001
        assert to_minor_units(Decimal("10.004")) == 1000

    def test_negative_amount(self):
        """Negative amounts convert without clamping."""
        assert to_minor_units(Decimal("-5")) == -500


class TestReceipt:
    """Tests for gateway receipt ids."""

    def test_receipt_format(self):
        """Receipts carry a fee id prefix and a timestamp."""
        receipt = build_receipt("0f8fad5b-d9cb-469f-a165-70867728950e", now=1700000000)
        assert receipt == "fee_0f8fad5bd9cb469f_1700000000"

    def test_receipt_within_gateway_limit(self):
        """Receipts never exceed forty characters."""
        assert len(build_receipt("x" * 200)) <= 40


class TestOrderService:
    """Tests for OrderService.create_order."""

    async def test_defaults_to_pending_amount(self, test_db_session, make_account, simulator, settings):
        """Without an explicit amount the whole pending balance is charged."""
        account = await make_account(total_owed=500000)
        service = OrderService(test_db_session, simulator, settings)

        order = await service.create_order(account.id)

        assert order.amount == 500000
        assert order.currency == "INR"
        assert order.notes["feeId"] == account.id
        assert account.active_order_id == order.id
        assert account.active_order_amount == 500000
        assert account.active_order_captured is False

    async def test_explicit_amount(self, test_db_session, make_account, simulator, settings):
        """An explicit amount in rupees is converted to paise."""
        account = await make_account(total_owed=500000)
        service = OrderService(test_db_session, simulator, settings)

        order = await service.create_order(account.id, Decimal("2000"))

        assert order.amount == 200000
        assert account.active_order_amount == 200000

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-100"), Decimal("0.004")])
    async def test_non_positive_amount_rejected(self, test_db_session, make_account, simulator, settings, amount):
        """Explicit amounts that resolve to zero or less are rejected."""
        account = await make_account(total_owed=500000)
        service = OrderService(test_db_session, simulator, settings)

        with pytest.raises(InvalidAmountError):
            await service.create_order(account.id, amount)
        assert account.active_order_id is None

    async def test_settled_account_rejected(self, test_db_session, make_account, simulator, settings):
        """A fully paid account has nothing to charge by default."""
        account = await make_account(total_owed=0)
        service = OrderService(test_db_session, simulator, settings)

        with pytest.raises(InvalidAmountError):
            await service.create_order(account.id)

    async def test_unknown_account(self, test_db_session, simulator, settings):
        """Orders against a missing account fail before calling the gateway."""
        connector = MagicMock()
        service = OrderService(test_db_session, connector, settings)

        with pytest.raises(FeeAccountNotFoundError):
            await service.create_order("missing")
        connector.create_order.assert_not_called()

    async def test_new_order_replaces_previous(self, test_db_session, make_account, simulator, settings):
        """Each call issues a new order and overwrites the in-flight one."""
        account = await make_account(total_owed=500000)
        service = OrderService(test_db_session, simulator, settings)

        first = await service.create_order(account.id)
        second = await service.create_order(account.id)

        assert first.id != second.id
        assert account.active_order_id == second.id

    async def test_gateway_failure(self, test_db_session, make_account, settings):
        """Gateway rejections surface as GatewayRequestError and change nothing."""
        account = await make_account(total_owed=500000)
        connector = SimulatorConnector(SimulatorConfig(success_rate=0.0, seed=1))
        service = OrderService(test_db_session, connector, settings)

        with pytest.raises(GatewayRequestError) as exc_info:
            await service.create_order(account.id)
        assert not isinstance(exc_info.value, GatewayTimeoutError)
        assert account.active_order_id is None

    async def test_gateway_timeout(self, test_db_session, make_account, settings):
        """A gateway slower than the timeout raises GatewayTimeoutError."""
        account = await make_account(total_owed=500000)

        def slow_create_order(request):
            time.sleep(0.3)
            return OrderHandle(id="order_slow", amount=request.amount, currency="INR")

        connector = MagicMock()
        connector.create_order.side_effect = slow_create_order
        fast_settings = dataclasses.replace(settings, gateway_timeout_seconds=0.05)
        service = OrderService(test_db_session, connector, fast_settings)

        with pytest.raises(GatewayTimeoutError):
            await service.create_order(account.id)
        assert account.active_order_id is None

    async def test_connector_timeout_error(self, test_db_session, make_account, settings):
        """A connector raising TimeoutError maps to GatewayTimeoutError."""
        account = await make_account(total_owed=500000)
        connector = SimulatorConnector(SimulatorConfig(timeout_rate=1.0, seed=1))
        service = OrderService(test_db_session, connector, settings)

        with pytest.raises(GatewayTimeoutError):
            await service.create_order(account.id)

    async def test_unexpected_connector_error_wrapped(self, test_db_session, make_account, settings):
        """Unexpected connector exceptions become GatewayRequestError."""
        account = await make_account(total_owed=500000)
        connector = MagicMock()
        connector.create_order.side_effect = RuntimeError("socket closed")
        service = OrderService(test_db_session, connector, settings)

        with pytest.raises(GatewayRequestError):
            await service.create_order(account.id)


class TestFeeAccountService:
    """Tests for the read-side fee queries."""

    async def test_get_account_missing(self, test_db_session):
        """Unknown ids raise FeeAccountNotFoundError."""
        with pytest.raises(FeeAccountNotFoundError):
            await FeeAccountService(test_db_session).get_account("missing")

    async def test_collection_report(self, test_db_session, make_account):
        """The report sums collected and outstanding fees in rupees."""
        await make_account(total_owed=500000, student_id="stu_001")
        partial = await make_account(total_owed=300000, student_id="stu_002")
        partial.paid_amount = 100000
        partial.pending_amount = 200000
        partial.status = "partial"
        await test_db_session.commit()

        report = await FeeAccountService(test_db_session).collection_report()

        assert report["total_accounts"] == 2
        assert report["total_owed"] == Decimal("8000.00")
        assert report["total_collected"] == Decimal("1000.00")
        assert report["total_outstanding"] == Decimal("7000.00")
        assert report["collection_rate"] == "12.50%"
        assert report["by_status"]["partial"]["count"] == 1
        assert report["by_status"]["paid"]["count"] == 0

    async def test_collection_report_empty(self, test_db_session):
        """An empty ledger reports N/A for the collection rate."""
        report = await FeeAccountService(test_db_session).collection_report()
        assert report["total_accounts"] == 0
        assert report["collection_rate"] == "N/A"
