# Overview: Pytest coverage for transaction boundaries and bounded retry on storage contention.

import pytest
from sqlalchemy import false
from sqlalchemy.orm.exc import StaleDataError

from labflow.errors import ConflictError, NotFoundError
from labflow.extensions import db
from labflow.models import Tenant
from labflow.services import sequence_service
from labflow.services.concurrency import RetryableConflict, run_in_transaction


class _Flaky:
    """Callable that raises `error` for the first `failures` calls, then returns 'done'."""

    def __init__(self, error, failures):
        self.error = error
        self.failures = failures
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "done"


class TestRunInTransaction:
    @pytest.mark.parametrize("error", [StaleDataError("row changed"), RetryableConflict("lost race")])
    def test_contention_exhausts_budget_as_conflict(self, app, db_session, error):
        op = _Flaky(error, failures=100)
        with pytest.raises(ConflictError) as exc:
            run_in_transaction(op)
        assert op.calls == app.config["TRANSACTION_RETRY_ATTEMPTS"]
        assert exc.value.code == "CONFLICT"
        assert exc.value.__cause__ is error

    def test_explicit_attempts_override_config(self, db_session):
        op = _Flaky(StaleDataError("row changed"), failures=100)
        with pytest.raises(ConflictError):
            run_in_transaction(op, attempts=5)
        assert op.calls == 5

    def test_domain_errors_are_not_retried(self, db_session):
        op = _Flaky(NotFoundError("Case 9 not found"), failures=100)
        with pytest.raises(NotFoundError):
            run_in_transaction(op)
        assert op.calls == 1

    def test_transient_failure_then_success(self, db_session):
        op = _Flaky(StaleDataError("row changed"), failures=1)
        assert run_in_transaction(op) == "done"
        assert op.calls == 2

    def test_failed_attempt_rolls_back_its_writes(self, db_session):
        calls = []

        def op():
            calls.append(1)
            db.session.add(Tenant(name=f"Lab {len(calls)}", code=f"L{len(calls)}", is_active=True))
            db.session.flush()
            if len(calls) == 1:
                raise StaleDataError("row changed")
            return "done"

        assert run_in_transaction(op) == "done"
        assert [t.code for t in db.session.query(Tenant).all()] == ["L2"]


def _miss_next_updates(monkeypatch, count):
    """Make the next `count` sequence UPDATEs match nothing, as if a concurrent first allocation won."""
    real_update = sequence_service.update
    left = {"n": count}

    def rigged_update(model):
        stmt = real_update(model)
        if left["n"]:
            left["n"] -= 1
            stmt = stmt.where(false())
        return stmt

    monkeypatch.setattr(sequence_service, "update", rigged_update)


class TestSequenceInitRace:
    def test_insert_race_raises_retryable_conflict(self, tenant_a, monkeypatch):
        sequence_service.allocate(tenant_a.id, "case_number")
        db.session.commit()

        _miss_next_updates(monkeypatch, 1)
        with pytest.raises(RetryableConflict):
            sequence_service.allocate(tenant_a.id, "case_number")
        db.session.rollback()
        assert sequence_service.current_value(tenant_a.id, "case_number") == 1

    def test_insert_race_is_retried_to_next_value(self, tenant_a, monkeypatch):
        sequence_service.allocate(tenant_a.id, "case_number")
        db.session.commit()

        _miss_next_updates(monkeypatch, 1)
        value = run_in_transaction(lambda: sequence_service.allocate(tenant_a.id, "case_number"))

        assert value == 2
        assert sequence_service.current_value(tenant_a.id, "case_number") == 2

    def test_persistent_race_surfaces_as_conflict(self, tenant_a, monkeypatch):
        sequence_service.allocate(tenant_a.id, "case_number")
        db.session.commit()

        _miss_next_updates(monkeypatch, 100)
        with pytest.raises(ConflictError):
            run_in_transaction(lambda: sequence_service.allocate(tenant_a.id, "case_number"))
        assert sequence_service.current_value(tenant_a.id, "case_number") == 1
