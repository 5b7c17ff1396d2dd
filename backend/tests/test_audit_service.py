"""
Audit lifecycle tests.

Verifies:
- Only audit managers create audits; only the assigned auditor conducts them
- draft -> in_progress -> completed, no reopening
- Counts are append-only and summed into final_audited_qty on completion
- A failure during completion leaves every item untouched
"""

import pytest

from storeledger.errors import Forbidden, InvalidState, InvalidTransition, NotFound
from storeledger.extensions import db
from storeledger.models import Audit, AuditItem, User
from storeledger.services import audit_service
from storeledger.services.authorization import actor_for_user


@pytest.fixture
def audit(db_session, manager_actor, auditor, sku1, sku2):
    return audit_service.create_audit(
        "Aisle 4 cycle count", auditor.id, "Main store", [sku1.id, sku2.id], manager_actor
    )


@pytest.fixture
def started(db_session, audit, auditor_actor):
    return audit_service.start_audit(audit.id, auditor_actor, selfie_path="7/selfie.jpg")


class TestCreateAudit:

    def test_snapshots_current_stock(self, db_session, audit):
        assert audit.id == "AUD-000001"
        assert audit.status == "draft"
        assert [(i.product_sku, i.current_stock) for i in audit.items] == [("SKU-1", 5), ("SKU-2", 20)]

    def test_cashier_cannot_create(self, db_session, cashier, auditor, sku1):
        with pytest.raises(Forbidden):
            audit_service.create_audit("x", auditor.id, None, [sku1.id], actor_for_user(cashier.id))

    def test_manager_without_grant_cannot_create(self, db_session, auditor, sku1):
        plain = User(username="plain", role="manager", permissions=[])
        db.session.add(plain)
        db.session.commit()

        with pytest.raises(Forbidden):
            audit_service.create_audit("x", auditor.id, None, [sku1.id], actor_for_user(plain.id))

    def test_unknown_product(self, db_session, manager_actor, auditor):
        with pytest.raises(NotFound):
            audit_service.create_audit("x", auditor.id, None, [999], manager_actor)


class TestConductAudit:

    def test_only_assigned_auditor_starts(self, db_session, audit, manager_actor):
        with pytest.raises(Forbidden):
            audit_service.start_audit(audit.id, manager_actor)
        assert audit_service.get_audit(audit.id).status == "draft"

    def test_start_records_selfie(self, db_session, started):
        assert started.status == "in_progress"
        assert started.selfie_path == "7/selfie.jpg"
        assert started.started_at is not None

    def test_cannot_start_twice(self, db_session, started, auditor_actor):
        with pytest.raises(InvalidTransition):
            audit_service.start_audit(started.id, auditor_actor)

    def test_counts_require_in_progress(self, db_session, audit, auditor_actor):
        item = audit.items[0]
        with pytest.raises(InvalidState):
            audit_service.record_count(audit.id, item.id, auditor_actor, 3)

    def test_counts_append_with_evidence(self, db_session, started, auditor_actor):
        item_id = started.items[0].id

        audit_service.record_count(started.id, item_id, auditor_actor, 3, evidence_paths=["7/a.jpg"])
        audit_service.record_count(started.id, item_id, auditor_actor, 1, notes="back shelf")

        item = db.session.get(AuditItem, item_id)
        assert [c.count for c in item.counts] == [3, 1]
        assert item.counts[0].evidence[0].file_path == "7/a.jpg"
        assert item.counted_total == 4
        assert item.final_audited_qty is None

    def test_other_user_cannot_count(self, db_session, started, manager_actor):
        with pytest.raises(Forbidden):
            audit_service.record_count(started.id, started.items[0].id, manager_actor, 1)

    def test_item_from_other_audit(self, db_session, started, auditor_actor):
        with pytest.raises(NotFound):
            audit_service.record_count(started.id, 99999, auditor_actor, 1)


class TestCompleteAudit:

    def test_sums_counts(self, db_session, started, auditor_actor):
        first, second = (i.id for i in started.items)
        audit_service.record_count(started.id, first, auditor_actor, 2)
        audit_service.record_count(started.id, first, auditor_actor, 2)
        audit_service.record_count(started.id, second, auditor_actor, 19)

        audit = audit_service.complete_audit(started.id, auditor_actor)

        assert audit.status == "completed"
        assert audit.completed_at is not None
        assert [i.final_audited_qty for i in audit.items] == [4, 19]

    def test_uncounted_item_finalizes_to_zero(self, db_session, started, auditor_actor):
        audit = audit_service.complete_audit(started.id, auditor_actor)
        assert [i.final_audited_qty for i in audit.items] == [0, 0]

    def test_no_reopening(self, db_session, started, auditor_actor):
        audit_service.complete_audit(started.id, auditor_actor)

        with pytest.raises(InvalidState):
            audit_service.complete_audit(started.id, auditor_actor)
        with pytest.raises(InvalidState):
            audit_service.record_count(started.id, started.items[0].id, auditor_actor, 1)

    def test_draft_cannot_complete(self, db_session, audit, auditor_actor):
        with pytest.raises(InvalidState):
            audit_service.complete_audit(audit.id, auditor_actor)

    def test_only_assigned_auditor_completes(self, db_session, started, manager_actor):
        with pytest.raises(Forbidden):
            audit_service.complete_audit(started.id, manager_actor)

    def test_failure_leaves_items_untouched(self, db_session, started, auditor_actor, monkeypatch):
        first, second = (i.id for i in started.items)
        audit_service.record_count(started.id, first, auditor_actor, 5)
        audit_service.record_count(started.id, second, auditor_actor, 6)

        original = AuditItem.counted_total

        def flaky_total(item):
            if item.id == second:
                raise RuntimeError("store write failed")
            return original.fget(item)

        monkeypatch.setattr(AuditItem, "counted_total", property(flaky_total))

        with pytest.raises(RuntimeError):
            audit_service.complete_audit(started.id, auditor_actor)

        audit = db.session.get(Audit, started.id)
        assert audit.status == "in_progress"
        assert [i.final_audited_qty for i in audit.items] == [None, None]


class TestListAudits:

    def test_auditor_sees_only_assigned(self, db_session, audit, auditor_actor, admin_actor, sku1):
        audit_service.create_audit("Other", admin_actor.user_id, None, [sku1.id], admin_actor)

        assert [a.id for a in audit_service.list_audits(auditor_actor)] == [audit.id]
        assert len(audit_service.list_audits(admin_actor)) == 2
