# Overview: Pytest coverage for the workflow orchestrator (creation, stage moves, board moves, delivery, cancellation).

"""
Case Workflow Tests

Covers:
- Creation: numbering, stage seeding, default SLA date, validation, rollback
- Stage moves: derived status, pinned manual states, closed cases
- Manual (board) moves, delivery, cancellation
- Audit completeness: exactly one entry per state change
- Notifications: best-effort, after commit
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from labflow.errors import CaseClosedError, InvalidStateError, InvalidTransitionError, NotFoundError
from labflow.extensions import db
from labflow.models import AuditEntry, Case, Notification
from labflow.services import case_service, notification_service, sequence_service, stage_service
from labflow.services.sla_service import add_business_days
from labflow.validation import ValidationError


def _stages(case):
    return stage_service.load_stages(case.id)


def _audit(case):
    return (
        db.session.query(AuditEntry)
        .filter_by(case_id=case.id)
        .order_by(AuditEntry.id.asc())
        .all()
    )


def _move(tenant, case, index, action, **kwargs):
    stage = _stages(case)[index]
    return case_service.move_stage(tenant.id, case.id, stage.id, action, actor_id="tech-2", **kwargs)


class TestCreateCase:
    def test_created_received_with_pending_stages(self, tenant_a, client_a, make_case):
        """Three-stage template yields three PENDING stages ordered 1..3."""
        case = make_case(tenant_a, client_a)

        assert case.status == "RECEIVED"
        assert case.status_pinned is False
        stages = _stages(case)
        assert [s.stage_order for s in stages] == [1, 2, 3]
        assert {s.status for s in stages} == {"PENDING"}

    def test_case_numbers_are_consecutive_per_tenant(self, tenant_a, tenant_b, client_a, client_b, make_case):
        numbers_a = [make_case(tenant_a, client_a).case_number for _ in range(3)]
        number_b = make_case(tenant_b, client_b).case_number

        assert numbers_a == [1, 2, 3]
        assert number_b == 1

    def test_default_sla_date_from_catalog_lead_time(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a, prosthesis_type_id="zirconia-crown")
        assert case.sla_date == add_business_days(case.created_at, 5)
        assert len(_stages(case)) == 7

    def test_explicit_sla_date_is_kept(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a, sla_date="2026-12-01")
        assert case.sla_date == datetime(2026, 12, 1)

    def test_defaults_and_descriptive_fields(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a, teeth=["11", 21], shade="A2", priority="URGENT")
        assert case.teeth == ["11", "21"]
        assert case.shade == "A2"
        assert case.priority == "URGENT"
        assert case.modality == "ANALOG"

    def test_creation_is_audited(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        entries = _audit(case)

        assert len(entries) == 1
        assert entries[0].action == "CREATED"
        assert entries[0].actor_id == "tech-1"
        assert entries[0].after["status"] == "RECEIVED"
        assert entries[0].after["case_number"] == case.case_number
        assert entries[0].after["stage_count"] == 3

    def test_duplicate_teeth_rejected(self, tenant_a, client_a, make_case):
        with pytest.raises(ValidationError):
            make_case(tenant_a, client_a, teeth=["11", "11"])
        assert db.session.query(Case).count() == 0

    @pytest.mark.parametrize("tooth", ["19", "51", "1", "abc"])
    def test_malformed_tooth_code_rejected(self, tenant_a, client_a, make_case, tooth):
        with pytest.raises(ValidationError):
            make_case(tenant_a, client_a, teeth=[tooth])

    def test_missing_required_field(self, tenant_a, client_a):
        with pytest.raises(ValidationError):
            case_service.create_case(tenant_a.id, {"client_id": client_a.id, "prosthesis_type_id": "retainer"})

    def test_bad_priority_rejected(self, tenant_a, client_a, make_case):
        with pytest.raises(ValidationError):
            make_case(tenant_a, client_a, priority="ASAP")

    def test_status_not_writable(self, tenant_a, client_a, make_case):
        with pytest.raises(ValidationError):
            make_case(tenant_a, client_a, status="APPROVED")

    def test_unknown_prosthesis_type(self, tenant_a, client_a, make_case):
        with pytest.raises(NotFoundError):
            make_case(tenant_a, client_a, prosthesis_type_id="gold-tooth")

    def test_unknown_client(self, tenant_a, client_a):
        with pytest.raises(NotFoundError):
            case_service.create_case(
                tenant_a.id,
                {"client_id": client_a.id + 999, "patient_name": "Maria", "prosthesis_type_id": "retainer"},
            )
        assert sequence_service.current_value(tenant_a.id, "case_number") == 0

    def test_client_of_other_tenant_is_not_found(self, tenant_a, client_b, make_case):
        with pytest.raises(NotFoundError):
            make_case(tenant_a, client_b)

    def test_failure_after_allocation_rolls_number_back(self, tenant_a, client_a, make_case, monkeypatch):
        make_case(tenant_a, client_a)

        def boom(case, names):
            raise RuntimeError("stage store down")

        monkeypatch.setattr(stage_service, "seed_stages", boom)
        with pytest.raises(RuntimeError):
            make_case(tenant_a, client_a)
        monkeypatch.undo()

        assert db.session.query(Case).count() == 1
        assert make_case(tenant_a, client_a).case_number == 2


class TestMoveStage:
    def test_start_moves_case_to_in_production(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case = _move(tenant_a, case, 0, "start")

        assert case.status == "IN_PRODUCTION"
        first = _stages(case)[0]
        assert first.status == "IN_PROGRESS"
        assert first.started_at is not None

    def test_ready_only_after_last_completion(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        statuses = []
        for index in range(3):
            case = _move(tenant_a, case, index, "complete")
            statuses.append(case.status)

        assert statuses == ["RECEIVED", "RECEIVED", "READY_FOR_DELIVERY"]

    def test_ready_after_start_complete_sequence(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        statuses = []
        for index in range(3):
            _move(tenant_a, case, index, "start")
            case = _move(tenant_a, case, index, "complete")
            statuses.append(case.status)

        assert statuses == ["IN_PRODUCTION", "IN_PRODUCTION", "READY_FOR_DELIVERY"]

    def test_skipped_stages_count_as_done(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        _move(tenant_a, case, 0, "start")
        _move(tenant_a, case, 0, "complete")
        _move(tenant_a, case, 1, "skip")
        case = _move(tenant_a, case, 2, "complete")
        assert case.status == "READY_FOR_DELIVERY"

    def test_manual_pin_is_overridden_by_completion(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        _move(tenant_a, case, 0, "start")
        _move(tenant_a, case, 0, "complete")

        case = case_service.update_status_manual(tenant_a.id, case.id, "WAITING_APPROVAL")
        assert case.status == "WAITING_APPROVAL"
        assert case.status_pinned is True

        case = _move(tenant_a, case, 1, "complete")
        assert case.status == "WAITING_APPROVAL"

        case = _move(tenant_a, case, 2, "complete")
        assert case.status == "READY_FOR_DELIVERY"
        assert case.status_pinned is False

    def test_pinned_status_survives_stage_start(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case_service.update_status_manual(tenant_a.id, case.id, "APPROVED")
        case = _move(tenant_a, case, 0, "start")
        assert case.status == "APPROVED"

    def test_completed_stage_rejects_actions(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        _move(tenant_a, case, 0, "complete")

        with pytest.raises(InvalidTransitionError) as exc:
            _move(tenant_a, case, 0, "skip")
        assert exc.value.current == "COMPLETED"
        assert exc.value.requested == "SKIPPED"
        assert _stages(case)[0].status == "COMPLETED"

    def test_unknown_action_rejected(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        with pytest.raises(ValidationError):
            _move(tenant_a, case, 0, "finish")

    def test_stage_notes_are_stored(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        _move(tenant_a, case, 0, "start", notes="Re-poured base")
        assert _stages(case)[0].notes == "Re-poured base"

    def test_stage_of_other_case_is_not_found(self, tenant_a, client_a, make_case):
        case_1 = make_case(tenant_a, client_a)
        case_2 = make_case(tenant_a, client_a)
        foreign = _stages(case_2)[0]

        with pytest.raises(NotFoundError):
            case_service.move_stage(tenant_a.id, case_1.id, foreign.id, "start")
        assert _stages(case_2)[0].status == "PENDING"

    def test_missing_case(self, tenant_a):
        with pytest.raises(NotFoundError):
            case_service.move_stage(tenant_a.id, 424242, 1, "start")

    def test_cancelled_case_rejects_stage_move(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case_service.cancel(tenant_a.id, case.id, "Dentist withdrew the order")

        with pytest.raises(CaseClosedError):
            _move(tenant_a, case, 0, "start")
        assert _stages(case)[0].status == "PENDING"


class TestManualStatus:
    def test_any_board_status_reachable(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        for target in ["READY_FOR_DELIVERY", "APPROVED", "RECEIVED", "IN_PRODUCTION"]:
            case = case_service.update_status_manual(tenant_a.id, case.id, target)
            assert case.status == target

    @pytest.mark.parametrize("target", ["DELIVERED", "CANCELLED"])
    def test_terminal_targets_rejected(self, tenant_a, client_a, make_case, target):
        case = make_case(tenant_a, client_a)
        with pytest.raises(InvalidStateError):
            case_service.update_status_manual(tenant_a.id, case.id, target)
        assert case_service.get_case(tenant_a.id, case.id).status == "RECEIVED"

    def test_unknown_status_rejected(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        with pytest.raises(ValidationError):
            case_service.update_status_manual(tenant_a.id, case.id, "ON_HOLD")

    def test_same_status_is_noop_without_audit(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case_service.update_status_manual(tenant_a.id, case.id, "RECEIVED")
        assert [e.action for e in _audit(case)] == ["CREATED"]

    def test_status_change_audited_with_before_and_after(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case_service.update_status_manual(tenant_a.id, case.id, "WAITING_APPROVAL", actor_id="lead")

        entry = _audit(case)[-1]
        assert entry.action == "STATUS_CHANGED"
        assert entry.actor_id == "lead"
        assert entry.before == {"status": "RECEIVED", "status_pinned": False}
        assert entry.after == {"status": "WAITING_APPROVAL", "status_pinned": True}

    @pytest.mark.parametrize("target", ["WAITING_APPROVAL", "RECEIVED", "IN_PRODUCTION"])
    def test_finished_case_stays_ready(self, tenant_a, client_a, make_case, target):
        case = make_case(tenant_a, client_a)
        for index in range(len(_stages(case))):
            _move(tenant_a, case, index, "complete")
        assert case_service.get_case(tenant_a.id, case.id).status == "READY_FOR_DELIVERY"

        with pytest.raises(InvalidStateError):
            case_service.update_status_manual(tenant_a.id, case.id, target)

        reloaded = case_service.get_case(tenant_a.id, case.id)
        assert reloaded.status == "READY_FOR_DELIVERY"
        assert {s.status for s in _stages(reloaded)} == {"COMPLETED"}
        assert _audit(case)[-1].action == "STAGE_COMPLETE"


class TestDeliverAndCancel:
    def test_deliver_stamps_delivery(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case = case_service.deliver(tenant_a.id, case.id, "courier")

        assert case.status == "DELIVERED"
        assert case.delivered_at is not None
        assert case.delivery_method == "courier"

    def test_deliver_twice_fails(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case_service.deliver(tenant_a.id, case.id, "courier")

        with pytest.raises(CaseClosedError):
            case_service.deliver(tenant_a.id, case.id, "pickup")
        assert case_service.get_case(tenant_a.id, case.id).delivery_method == "courier"

    def test_deliver_requires_method(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        with pytest.raises(ValidationError):
            case_service.deliver(tenant_a.id, case.id, "  ")

    def test_cancel_keeps_case_number_used(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case = case_service.cancel(tenant_a.id, case.id, "Duplicate order")

        assert case.status == "CANCELLED"
        assert case.cancel_reason == "Duplicate order"
        assert case.cancelled_at is not None
        assert make_case(tenant_a, client_a).case_number == 2

    @pytest.mark.parametrize("close", ["deliver", "cancel"])
    def test_closed_case_rejects_everything(self, tenant_a, client_a, make_case, close):
        case = make_case(tenant_a, client_a)
        if close == "deliver":
            case_service.deliver(tenant_a.id, case.id, "courier")
        else:
            case_service.cancel(tenant_a.id, case.id)
        stage_id = _stages(case)[0].id
        audit_count = len(_audit(case))

        attempts = [
            lambda: case_service.move_stage(tenant_a.id, case.id, stage_id, "start"),
            lambda: case_service.update_status_manual(tenant_a.id, case.id, "RECEIVED"),
            lambda: case_service.deliver(tenant_a.id, case.id, "courier"),
            lambda: case_service.cancel(tenant_a.id, case.id),
            lambda: case_service.update_case(tenant_a.id, case.id, {"shade": "B1"}),
        ]
        for attempt in attempts:
            with pytest.raises(CaseClosedError):
                attempt()

        assert len(_audit(case)) == audit_count


class TestAuditCompleteness:
    def test_one_entry_per_change_matching_post_state(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        stage_ids = [s.id for s in _stages(case)]

        operations = [
            lambda: case_service.move_stage(tenant_a.id, case.id, stage_ids[0], "start"),
            lambda: case_service.move_stage(tenant_a.id, case.id, stage_ids[0], "complete"),
            lambda: case_service.update_status_manual(tenant_a.id, case.id, "WAITING_APPROVAL"),
            lambda: case_service.update_case(tenant_a.id, case.id, {"shade": "A3"}),
            lambda: case_service.move_stage(tenant_a.id, case.id, stage_ids[1], "skip"),
            lambda: case_service.move_stage(tenant_a.id, case.id, stage_ids[2], "complete"),
            lambda: case_service.deliver(tenant_a.id, case.id, "courier"),
        ]

        for op in operations:
            before_count = len(_audit(case))
            op()
            entries = _audit(case)
            assert len(entries) == before_count + 1

            entry = entries[-1]
            if entry.entity == "CaseStage":
                stage = next(s for s in _stages(case) if s.id == entry.entity_id)
                assert entry.after["status"] == stage.status
                assert entry.after["case_status"] == case_service.get_case(tenant_a.id, case.id).status
            else:
                assert entry.after["status"] == case_service.get_case(tenant_a.id, case.id).status

        actions = [e.action for e in _audit(case)]
        assert actions == [
            "CREATED", "STAGE_START", "STAGE_COMPLETE", "STATUS_CHANGED",
            "UPDATED", "STAGE_SKIP", "STAGE_COMPLETE", "DELIVERED",
        ]

    def test_rejected_transition_writes_nothing(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        _move(tenant_a, case, 0, "skip")
        with pytest.raises(InvalidTransitionError):
            _move(tenant_a, case, 0, "start")
        assert [e.action for e in _audit(case)] == ["CREATED", "STAGE_SKIP"]

    def test_case_audit_newest_first(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        _move(tenant_a, case, 0, "start")
        entries = case_service.get_case_audit(tenant_a.id, case.id, limit=1)
        assert [e.action for e in entries] == ["STAGE_START"]


class TestUpdateCase:
    def test_updates_descriptive_fields(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case = case_service.update_case(
            tenant_a.id, case.id, {"patient_name": "Maria S. Souza", "teeth": ["36", "37"]}
        )
        assert case.patient_name == "Maria S. Souza"
        assert case.teeth == ["36", "37"]

        entry = _audit(case)[-1]
        assert entry.action == "UPDATED"
        assert entry.before["patient_name"] == "Maria Silva"
        assert entry.after["teeth"] == ["36", "37"]

    def test_unchanged_values_are_not_audited(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        case_service.update_case(tenant_a.id, case.id, {"patient_name": "Maria Silva"})
        assert [e.action for e in _audit(case)] == ["CREATED"]

    @pytest.mark.parametrize("field,value", [("client_id", 2), ("prosthesis_type_id", "retainer"), ("status", "APPROVED")])
    def test_fixed_fields_rejected(self, tenant_a, client_a, make_case, field, value):
        case = make_case(tenant_a, client_a)
        with pytest.raises(ValidationError):
            case_service.update_case(tenant_a.id, case.id, {field: value})


class TestQueries:
    def test_list_filters_and_pagination(self, tenant_a, client_a, make_case):
        make_case(tenant_a, client_a, patient_name="Ana Pereira", priority="URGENT")
        make_case(tenant_a, client_a, patient_name="Bruno Alves")
        third = make_case(tenant_a, client_a, patient_name="Carla Dias", prosthesis_type_id="retainer")

        result = case_service.list_cases(tenant_a.id, {}, page=1, per_page=2)
        assert result["total"] == 3
        assert result["total_pages"] == 2
        assert [c.patient_name for c in result["items"]] == ["Carla Dias", "Bruno Alves"]

        assert case_service.list_cases(tenant_a.id, {"priority": "URGENT"})["total"] == 1
        assert case_service.list_cases(tenant_a.id, {"prosthesis_type_id": "retainer"})["total"] == 1
        assert case_service.list_cases(tenant_a.id, {"search": "bruno"})["total"] == 1

        by_number = case_service.list_cases(tenant_a.id, {"search": str(third.case_number)})
        assert [c.id for c in by_number["items"]] == [third.id]

    def test_get_case_of_other_tenant_is_not_found(self, tenant_a, tenant_b, client_a, make_case):
        case = make_case(tenant_a, client_a)
        with pytest.raises(NotFoundError):
            case_service.get_case(tenant_b.id, case.id)


class TestNotifications:
    def test_ready_delivered_cancelled_notify(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        for index in range(3):
            _move(tenant_a, case, index, "complete")
        case_service.deliver(tenant_a.id, case.id, "courier")
        other = make_case(tenant_a, client_a)
        case_service.cancel(tenant_a.id, other.id)

        types = [n.type for n in notification_service.list_notifications(tenant_a.id)]
        assert sorted(types) == ["case.cancelled", "case.delivered", "case.ready_for_delivery"]

    def test_intermediate_transitions_do_not_notify(self, tenant_a, client_a, make_case):
        case = make_case(tenant_a, client_a)
        _move(tenant_a, case, 0, "start")
        case_service.update_status_manual(tenant_a.id, case.id, "WAITING_APPROVAL")
        assert db.session.query(Notification).count() == 0

    def test_notification_failure_does_not_undo_transition(self, tenant_a, client_a, make_case, monkeypatch):
        case = make_case(tenant_a, client_a)

        def broken(**kwargs):
            raise SQLAlchemyError("notifications table unavailable")

        monkeypatch.setattr(notification_service, "Notification", broken)
        case = case_service.deliver(tenant_a.id, case.id, "courier")

        assert case.status == "DELIVERED"
        assert case_service.get_case(tenant_a.id, case.id).status == "DELIVERED"

    def test_unexpected_dispatch_error_is_logged_not_raised(self, tenant_a, client_a, make_case, monkeypatch, caplog):
        case = make_case(tenant_a, client_a)

        def broken(**kwargs):
            raise RuntimeError("notification template missing")

        monkeypatch.setattr(notification_service, "notify_status_change", broken)
        case = case_service.cancel(tenant_a.id, case.id, "duplicate order")

        assert case.status == "CANCELLED"
        assert case_service.get_case(tenant_a.id, case.id).status == "CANCELLED"
        assert "Notification dispatch failed" in caplog.text

    def test_disabled_notifications(self, app, tenant_a, client_a, make_case, monkeypatch):
        monkeypatch.setitem(app.config, "NOTIFICATIONS_ENABLED", False)
        case = make_case(tenant_a, client_a)
        case_service.cancel(tenant_a.id, case.id)
        assert db.session.query(Notification).count() == 0
