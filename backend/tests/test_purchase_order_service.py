"""
Purchase-order lifecycle tests.

Verifies:
- Draft -> Confirmed -> Received, with Cancelled from Draft or Confirmed
- Receipts credit stock and never exceed the ordered quantity
- An over-receipt on any line rejects the whole receipt
- Receiving runs the demand-notice cascade
- A failing cascade rolls the whole receipt back
"""

import pytest

from storeledger.errors import InvalidState, InvalidTransition, NotFound, OverReceipt, ValidationError
from storeledger.extensions import db
from storeledger.models import Product, StockMovement
from storeledger.services import demand_notice_service, inventory_service, purchase_order_service


@pytest.fixture
def supplier(db_session):
    return purchase_order_service.create_supplier("Muscat Hardware", phone="+968 2400 0000")


@pytest.fixture
def draft_po(db_session, manager, supplier, sku1, sku2):
    return purchase_order_service.create_purchase_order(
        supplier.id,
        [{"product_id": sku1.id, "quantity": 10}, {"product_id": sku2.id, "quantity": 4}],
        manager.id,
        expected_delivery="2026-11-01",
    )


def _item_ids(po):
    return [item.id for item in po.items]


class TestCreatePurchaseOrder:

    def test_creates_draft(self, db_session, draft_po):
        assert draft_po.id == "PO-000001"
        assert draft_po.status == "Draft"
        assert [i.quantity_ordered for i in draft_po.items] == [10, 4]
        assert all(i.quantity_received == 0 for i in draft_po.items)

    def test_unknown_product(self, db_session, manager, supplier):
        with pytest.raises(NotFound):
            purchase_order_service.create_purchase_order(
                supplier.id, [{"product_id": 999, "quantity": 1}], manager.id
            )

    def test_unknown_supplier(self, db_session, manager, sku1):
        with pytest.raises(NotFound):
            purchase_order_service.create_purchase_order(
                404, [{"product_id": sku1.id, "quantity": 1}], manager.id
            )

    def test_zero_quantity_rejected(self, db_session, manager, supplier, sku1):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(
                supplier.id, [{"product_id": sku1.id, "quantity": 0}], manager.id
            )

    def test_malformed_item_rejected(self, db_session, manager, supplier):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(supplier.id, [42], manager.id)

    def test_duplicate_supplier_name(self, db_session, supplier):
        with pytest.raises(InvalidState):
            purchase_order_service.create_supplier("Muscat Hardware")


class TestLifecycle:

    def test_confirm_only_from_draft(self, db_session, draft_po):
        po = purchase_order_service.confirm_purchase_order(draft_po.id)
        assert po.status == "Confirmed"
        assert po.confirmed_at is not None

        with pytest.raises(InvalidTransition):
            purchase_order_service.confirm_purchase_order(draft_po.id)

    def test_cancel_from_confirmed(self, db_session, draft_po):
        purchase_order_service.confirm_purchase_order(draft_po.id)
        po = purchase_order_service.cancel_purchase_order(draft_po.id)
        assert po.status == "Cancelled"

        with pytest.raises(InvalidTransition):
            purchase_order_service.confirm_purchase_order(draft_po.id)

    def test_draft_cannot_be_received(self, db_session, manager, draft_po):
        first, _ = _item_ids(draft_po)
        with pytest.raises(InvalidState):
            purchase_order_service.receive_purchase_order(
                draft_po.id, [{"po_item_id": first, "quantity": 1}], manager.id
            )


class TestReceive:

    @pytest.fixture
    def confirmed_po(self, db_session, draft_po):
        return purchase_order_service.confirm_purchase_order(draft_po.id)

    def test_partial_receipt_credits_stock(self, db_session, manager, sku1, confirmed_po):
        first, _ = _item_ids(confirmed_po)

        po = purchase_order_service.receive_purchase_order(
            confirmed_po.id, [{"po_item_id": first, "quantity": 4}], manager.id
        )

        assert po.status == "Confirmed"
        assert po.items[0].quantity_received == 4
        assert db.session.get(Product, sku1.id).quantity_in_stock == 9

        movement = db.session.query(StockMovement).filter_by(reason="PO_RECEIPT").one()
        assert movement.po_item_id == first
        assert movement.quantity_delta == 4

    def test_full_receipt_marks_received(self, db_session, manager, sku1, sku2, confirmed_po):
        first, second = _item_ids(confirmed_po)

        purchase_order_service.receive_purchase_order(
            confirmed_po.id, [{"po_item_id": first, "quantity": 6}], manager.id
        )
        po = purchase_order_service.receive_purchase_order(
            confirmed_po.id,
            [{"po_item_id": first, "quantity": 4}, {"po_item_id": second, "quantity": 4}],
            manager.id,
        )

        assert po.status == "Received"
        assert po.received_at is not None
        assert db.session.get(Product, sku1.id).quantity_in_stock == 15
        assert db.session.get(Product, sku2.id).quantity_in_stock == 24

        with pytest.raises(InvalidState):
            purchase_order_service.receive_purchase_order(
                confirmed_po.id, [{"po_item_id": first, "quantity": 1}], manager.id
            )

    def test_over_receipt_rejects_whole_receipt(self, db_session, manager, sku1, sku2, confirmed_po):
        first, second = _item_ids(confirmed_po)

        with pytest.raises(OverReceipt) as exc:
            purchase_order_service.receive_purchase_order(
                confirmed_po.id,
                [{"po_item_id": first, "quantity": 3}, {"po_item_id": second, "quantity": 5}],
                manager.id,
            )

        assert exc.value.po_item_id == second
        assert exc.value.remaining == 4
        assert exc.value.requested == 5
        po = purchase_order_service.get_purchase_order(confirmed_po.id)
        assert [i.quantity_received for i in po.items] == [0, 0]
        assert db.session.get(Product, sku1.id).quantity_in_stock == 5

    def test_split_lines_for_same_item_are_summed(self, db_session, manager, confirmed_po):
        _, second = _item_ids(confirmed_po)
        with pytest.raises(OverReceipt):
            purchase_order_service.receive_purchase_order(
                confirmed_po.id,
                [{"po_item_id": second, "quantity": 3}, {"po_item_id": second, "quantity": 2}],
                manager.id,
            )

    @pytest.mark.parametrize("receipts", [[5], ["first"], [None]])
    def test_malformed_receipt_line_rejected(self, db_session, manager, sku1, confirmed_po, receipts):
        with pytest.raises(ValidationError):
            purchase_order_service.receive_purchase_order(confirmed_po.id, receipts, manager.id)
        assert db.session.get(Product, sku1.id).quantity_in_stock == 5

    def test_foreign_item_rejected(self, db_session, manager, confirmed_po):
        with pytest.raises(ValidationError):
            purchase_order_service.receive_purchase_order(
                confirmed_po.id, [{"po_item_id": 12345, "quantity": 1}], manager.id
            )

    def test_receipt_runs_cascade(self, db_session, manager, salesperson, sku1, confirmed_po):
        notice = demand_notice_service.create_demand_notice(
            salesperson_id=salesperson.id,
            customer_contact_number="555",
            quantity_requested=8,
            agreed_price="10",
            product_sku="SKU-1",
        )
        first, _ = _item_ids(confirmed_po)

        purchase_order_service.receive_purchase_order(
            confirmed_po.id, [{"po_item_id": first, "quantity": 10}], manager.id
        )

        notice = demand_notice_service.get_demand_notice(notice.id)
        assert notice.status == "full_stock_available"
        assert notice.quantity_fulfilled == 8

    def test_cascade_failure_rolls_back_receipt(self, db_session, manager, salesperson, sku1, confirmed_po, monkeypatch):
        notice = demand_notice_service.create_demand_notice(
            salesperson_id=salesperson.id,
            customer_contact_number="555",
            quantity_requested=8,
            agreed_price="10",
            product_sku="SKU-1",
        )
        cascade = inventory_service.on_stock_arrived

        def cascade_then_fail(*args, **kwargs):
            cascade(*args, **kwargs)
            db.session.flush()
            raise RuntimeError("cascade failed after updating notices")

        monkeypatch.setattr(inventory_service, "on_stock_arrived", cascade_then_fail)
        first, _ = _item_ids(confirmed_po)

        with pytest.raises(RuntimeError):
            purchase_order_service.receive_purchase_order(
                confirmed_po.id, [{"po_item_id": first, "quantity": 10}], manager.id
            )

        po = purchase_order_service.get_purchase_order(confirmed_po.id)
        assert po.status == "Confirmed"
        assert [i.quantity_received for i in po.items] == [0, 0]
        assert db.session.get(Product, sku1.id).quantity_in_stock == 5
        assert db.session.query(StockMovement).filter_by(reason="PO_RECEIPT").count() == 0
        notice = demand_notice_service.get_demand_notice(notice.id)
        assert notice.quantity_fulfilled == 0
        assert notice.status == "awaiting_stock"

class TestAttachments:

    def test_records_attachment(self, db_session, manager, draft_po):
        attachment = purchase_order_service.add_attachment(
            draft_po.id, "PO-000001/abc.pdf", "invoice.pdf", kind="invoice", uploaded_by_id=manager.id
        )
        assert attachment.po_id == draft_po.id
        assert len(purchase_order_service.get_purchase_order(draft_po.id).attachments) == 1

    def test_unknown_kind(self, db_session, draft_po):
        with pytest.raises(ValidationError):
            purchase_order_service.add_attachment(draft_po.id, "x/y.bin", kind="selfie")
