"""
Order settlement tests.

Verifies:
- Settlement decrements stock, writes SALE movements and issues an invoice id
- Validation happens before any write (stock, SKUs, payments)
- A failed settlement leaves no order, no stock change and no counter advance
- Order status only moves forward, with payment gates
- Demand notices convert into orders carrying their advance payments
"""

from decimal import Decimal

import pytest

from storeledger.errors import (
    InsufficientStock,
    InvalidState,
    InvalidTransition,
    PaymentMismatch,
    ProductNotFound,
    ValidationError,
)
from storeledger.extensions import db
from storeledger.models import Order, Product, StockMovement
from storeledger.services import demand_notice_service, order_service, sequence_service


def _cash(amount):
    return [{"method": "cash", "amount": amount}]


class TestSettleOrder:

    def test_settles_and_decrements_stock(self, db_session, cashier, sku1):
        order = order_service.settle_order(
            [{"sku": "SKU-1", "quantity": 5}], _cash("50.000"), cashier.id
        )

        assert order.id == "000001"
        assert order.status == "completed"
        assert order.delivery_status == "pickup_ready"
        assert order.total_amount == Decimal("50.000")
        assert len(order.items) == 1
        assert order.items[0].unit_price == Decimal("10.000")

        product = db.session.get(Product, sku1.id)
        assert product.quantity_in_stock == 0

        sale = db.session.query(StockMovement).filter_by(product_id=sku1.id, reason="SALE").one()
        assert sale.quantity_delta == -5
        assert sale.order_id == order.id

    def test_insufficient_stock_after_sellout(self, db_session, cashier, sku1):
        order_service.settle_order([{"sku": "SKU-1", "quantity": 5}], _cash("50"), cashier.id)

        with pytest.raises(InsufficientStock) as exc:
            order_service.settle_order([{"sku": "SKU-1", "quantity": 1}], _cash("10"), cashier.id)

        assert exc.value.sku == "SKU-1"
        assert exc.value.available == 0
        assert exc.value.requested == 1
        assert db.session.query(Order).count() == 1
        # Counter only advanced for the committed order
        assert sequence_service.peek("invoice") == 2

    def test_first_failing_line_reported(self, db_session, cashier, sku1, sku2):
        with pytest.raises(InsufficientStock) as exc:
            order_service.settle_order(
                [{"sku": "SKU-2", "quantity": 21}, {"sku": "SKU-1", "quantity": 6}],
                _cash("100"),
                cashier.id,
            )

        assert exc.value.sku == "SKU-2"
        assert db.session.get(Product, sku1.id).quantity_in_stock == 5
        assert db.session.get(Product, sku2.id).quantity_in_stock == 20

    def test_duplicate_lines_are_combined(self, db_session, cashier, sku1):
        with pytest.raises(InsufficientStock) as exc:
            order_service.settle_order(
                [{"sku": "SKU-1", "quantity": 3}, {"sku": "SKU-1", "quantity": 3}],
                _cash("60"),
                cashier.id,
            )
        assert exc.value.requested == 6

    def test_unknown_sku(self, db_session, cashier, sku1):
        with pytest.raises(ProductNotFound) as exc:
            order_service.settle_order(
                [{"sku": "SKU-1", "quantity": 1}, {"sku": "NOPE", "quantity": 1}],
                _cash("10"),
                cashier.id,
            )

        assert exc.value.skus == ["NOPE"]
        assert db.session.get(Product, sku1.id).quantity_in_stock == 5

    def test_payment_mismatch_rolls_back(self, db_session, cashier, sku1):
        with pytest.raises(PaymentMismatch) as exc:
            order_service.settle_order([{"sku": "SKU-1", "quantity": 2}], _cash("19.990"), cashier.id)

        assert exc.value.expected == Decimal("20.000")
        assert db.session.query(Order).count() == 0
        assert db.session.get(Product, sku1.id).quantity_in_stock == 5
        assert sequence_service.peek("invoice") == 1

    def test_payment_within_tolerance(self, db_session, cashier, sku2):
        order = order_service.settle_order([{"sku": "SKU-2", "quantity": 3}], _cash("7.504"), cashier.id)
        assert order.total_amount == Decimal("7.500")

    def test_split_payments(self, db_session, cashier, sku1, sku2):
        order = order_service.settle_order(
            [{"sku": "SKU-1", "quantity": 1}, {"sku": "SKU-2", "quantity": 2}],
            [{"method": "cash", "amount": "5"}, {"method": "card", "amount": "10", "transaction_id": "T-1"}],
            cashier.id,
        )
        assert order.total_amount == Decimal("15.000")
        assert [p.method for p in order.payments] == ["cash", "card"]

    def test_pricing_hook(self, db_session, cashier, sku1):
        def pricing(subtotal):
            return subtotal * Decimal("0.1"), Decimal("0.5")

        order = order_service.settle_order(
            [{"sku": "SKU-1", "quantity": 2}], _cash("18.500"), cashier.id, pricing=pricing
        )
        assert order.discount_amount == Decimal("2.000")
        assert order.tax_amount == Decimal("0.500")
        assert order.total_amount == Decimal("18.500")

    @pytest.mark.parametrize("items", [
        [],
        [{"sku": "SKU-1", "quantity": 0}],
        [{"sku": "SKU-1", "quantity": -1}],
        [{"sku": "SKU-1", "quantity": 1.5}],
        [{"sku": "", "quantity": 1}],
        [{"sku": 123, "quantity": 1}],
        ["SKU-1"],
    ])
    def test_rejects_bad_items(self, db_session, cashier, sku1, items):
        with pytest.raises(ValidationError):
            order_service.settle_order(items, _cash("10"), cashier.id)

    def test_rejects_unknown_payment_method(self, db_session, cashier, sku1):
        with pytest.raises(ValidationError):
            order_service.settle_order(
                [{"sku": "SKU-1", "quantity": 1}], [{"method": "iou", "amount": "10"}], cashier.id
            )

    def test_ids_are_sequential(self, db_session, cashier, sku2):
        ids = [
            order_service.settle_order([{"sku": "SKU-2", "quantity": 1}], _cash("2.5"), cashier.id).id
            for _ in range(3)
        ]
        assert ids == ["000001", "000002", "000003"]


@pytest.fixture
def stocked_notice(db_session, salesperson, sku1):
    """Demand notice for 3 x SKU-1 that has become fully available."""
    notice = demand_notice_service.create_demand_notice(
        salesperson_id=salesperson.id,
        customer_contact_number="+968 9000 0000",
        quantity_requested=3,
        agreed_price="9.000",
        product_sku="SKU-1",
    )
    notice = demand_notice_service.get_demand_notice(notice.id)
    notice.status = demand_notice_service.STATUS_FULL
    notice.quantity_fulfilled = 3
    db.session.commit()
    return notice


class TestConvertDemandNotice:

    def test_unpaid_notice_creates_pending_order(self, db_session, cashier, sku1, stocked_notice):
        order = order_service.convert_demand_notice_to_order(stocked_notice.id, cashier.id)

        assert order.status == "pending_payment"
        assert order.total_amount == Decimal("27.000")
        assert order.linked_demand_notice_id == stocked_notice.id
        assert db.session.get(Product, sku1.id).quantity_in_stock == 2

        notice = demand_notice_service.get_demand_notice(stocked_notice.id)
        assert notice.status == "order_processing"
        assert notice.linked_order_id == order.id

    def test_advances_carry_over(self, db_session, cashier, stocked_notice):
        demand_notice_service.add_demand_notice_payment(stocked_notice.id, "cash", "10")

        order = order_service.convert_demand_notice_to_order(stocked_notice.id, cashier.id)

        assert order.status == "partial_payment"
        assert [p.method for p in order.payments] == ["advance_on_dn"]
        assert order.total_paid == Decimal("10.000")

    def test_fully_prepaid_notice_is_fulfilled(self, db_session, cashier, stocked_notice):
        demand_notice_service.add_demand_notice_payment(stocked_notice.id, "card", "27")

        order = order_service.convert_demand_notice_to_order(stocked_notice.id, cashier.id)

        assert order.status == "paid"
        assert demand_notice_service.get_demand_notice(stocked_notice.id).status == "fulfilled"

    def test_cannot_convert_twice(self, db_session, cashier, stocked_notice):
        order_service.convert_demand_notice_to_order(stocked_notice.id, cashier.id)
        with pytest.raises(InvalidState):
            order_service.convert_demand_notice_to_order(stocked_notice.id, cashier.id)

    def test_awaiting_notice_cannot_convert(self, db_session, cashier, salesperson, sku1):
        notice = demand_notice_service.create_demand_notice(
            salesperson_id=salesperson.id,
            customer_contact_number="555",
            quantity_requested=1,
            agreed_price="10",
            product_sku="SKU-1",
        )
        with pytest.raises(InvalidTransition):
            order_service.convert_demand_notice_to_order(notice.id, cashier.id)


class TestOrderPaymentsAndStatus:

    @pytest.fixture
    def pending_order(self, db_session, cashier, stocked_notice):
        return order_service.convert_demand_notice_to_order(stocked_notice.id, cashier.id)

    def test_payment_completes_order_and_notice(self, db_session, cashier, pending_order):
        order = order_service.add_order_payment(pending_order.id, "cash", "20", cashier.id)
        assert order.status == "partial_payment"

        order = order_service.add_order_payment(pending_order.id, "card", "7", cashier.id)
        assert order.status == "paid"

        notice = demand_notice_service.get_demand_notice(order.linked_demand_notice_id)
        assert notice.status == "fulfilled"

    def test_overpayment_rejected(self, db_session, cashier, pending_order):
        with pytest.raises(PaymentMismatch):
            order_service.add_order_payment(pending_order.id, "cash", "30", cashier.id)
        assert order_service.get_order(pending_order.id).payments == []

    def test_payment_on_completed_order_rejected(self, db_session, cashier, sku2):
        order = order_service.settle_order([{"sku": "SKU-2", "quantity": 1}], _cash("2.5"), cashier.id)
        with pytest.raises(InvalidState):
            order_service.add_order_payment(order.id, "cash", "1", cashier.id)

    def test_ready_for_pickup_requires_full_payment(self, db_session, cashier, pending_order):
        order_service.add_order_payment(pending_order.id, "cash", "5", cashier.id)

        order = order_service.advance_order_status(pending_order.id, "preparing", cashier.id)
        assert order.status == "preparing"

        with pytest.raises(InvalidState):
            order_service.advance_order_status(pending_order.id, "ready_for_pickup", cashier.id)

    def test_preparing_requires_some_payment(self, db_session, cashier, pending_order):
        with pytest.raises(InvalidState):
            order_service.advance_order_status(pending_order.id, "preparing", cashier.id)

    def test_status_never_moves_backwards(self, db_session, cashier, pending_order):
        order_service.add_order_payment(pending_order.id, "cash", "27", cashier.id)
        order_service.advance_order_status(pending_order.id, "ready_for_pickup", cashier.id)

        with pytest.raises(InvalidTransition):
            order_service.advance_order_status(pending_order.id, "preparing", cashier.id)

    def test_terminal_status_is_final(self, db_session, cashier, pending_order):
        order_service.advance_order_status(pending_order.id, "cancelled", cashier.id)

        with pytest.raises(InvalidTransition):
            order_service.advance_order_status(pending_order.id, "completed", cashier.id)

    def test_unknown_status(self, db_session, cashier, pending_order):
        with pytest.raises(ValidationError):
            order_service.advance_order_status(pending_order.id, "shipped", cashier.id)
