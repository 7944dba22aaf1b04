import pytest
from sqlalchemy.exc import SQLAlchemyError

from caltrack import models, schemas
from caltrack.errors import CascadeIntegrityError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from caltrack.services import incoming, lifecycle, outgoing


class ScriptedRandom:
    """Stands in for ``random.Random`` and replays fixed draws."""

    def __init__(self, *values):
        self.values = list(values)

    def randint(self, low, high):
        value = self.values.pop(0) if len(self.values) > 1 else self.values[0]
        assert low <= value <= high
        return value


def _released(db, factory, people):
    record = factory.submit(people.employee, people.technician)
    incoming.confirm(db, record.id, actor=factory.actor(people.technician), clock=factory.clock)
    release = outgoing.complete(
        db,
        schemas.CompleteCalibrationIn(incoming_id=record.id, confirmer_id=people.coworker.id, pin=people.pin),
        actor=factory.actor(people.technician),
        clock=factory.clock,
    )
    db.commit()
    return record, release


def test_issue_recall_number_skips_taken_numbers(db, factory, people, clock):
    factory.submit(people.employee, people.technician, recall_number="RCL-2024-000001")

    issued = lifecycle.issue_recall_number(db, clock=clock, rng=ScriptedRandom(1, 2))
    assert issued == "RCL-2024-000002"
    assert lifecycle.RECALL_NUMBER_PATTERN.match(issued)


def test_issue_recall_number_gives_up(db, factory, people, clock):
    factory.submit(people.employee, people.technician, recall_number="RCL-2024-000001")

    with pytest.raises(ConflictError) as exc:
        lifecycle.issue_recall_number(db, clock=clock, rng=ScriptedRandom(1), max_attempts=3)
    assert exc.value.code == "recall_number_exhausted"
    assert exc.value.context == {"attempts": 3}


def test_archive_refuses_records_with_a_release(db, factory, people):
    record, _ = _released(db, factory, people)
    with pytest.raises(ValidationError) as exc:
        lifecycle.archive(db, record.id, actor=factory.actor(people.technician), clock=factory.clock)
    assert exc.value.code == "has_outgoing"
    assert "related outgoing record" in exc.value.message


def test_force_delete_requires_admin(db, factory, people):
    record, _ = _released(db, factory, people)
    with pytest.raises(ForbiddenError):
        lifecycle.archive(db, record.id, actor=factory.actor(people.technician), force=True, clock=factory.clock)


def test_force_delete_removes_both_sides(db, factory, people):
    record, release = _released(db, factory, people)
    record_id, release_id, equipment_id = record.id, release.id, record.equipment_id

    result = lifecycle.archive(db, record_id, actor=factory.actor(people.admin), force=True, clock=factory.clock)
    db.commit()

    assert isinstance(result, lifecycle.ForceDeleted)
    assert result.result == "force_deleted"
    assert result.outgoing_ids == (release_id,)
    assert result.equipment_id is None
    assert db.get(models.IncomingRecord, record_id) is None
    assert db.get(models.OutgoingRecord, release_id) is None
    equipment = db.get(models.Equipment, equipment_id)
    assert equipment is not None
    assert equipment.status == "active"

    with pytest.raises(NotFoundError) as exc:
        lifecycle.restore(db, record_id, actor=factory.actor(people.admin), clock=factory.clock)
    assert exc.value.code == "archived_not_found"


def test_force_delete_of_unreleased_intake_drops_its_equipment(db, factory, people):
    record = factory.submit(people.employee, people.technician)
    record_id, equipment_id = record.id, record.equipment_id

    result = lifecycle.archive(db, record_id, actor=factory.actor(people.admin), force=True, clock=factory.clock)
    db.commit()

    assert result.outgoing_ids == ()
    assert result.equipment_id == equipment_id
    assert db.get(models.IncomingRecord, record_id) is None
    assert db.get(models.Equipment, equipment_id) is None


def test_force_delete_keeps_equipment_with_history(db, factory, people, clock):
    first, release = _released(db, factory, people)
    clock.advance(days=1)
    outgoing.confirm_pickup(
        db,
        release.id,
        actor=factory.actor(people.technician),
        employee_id=people.employee.id,
        pin=people.pin,
        clock=clock,
    )
    db.commit()
    second = factory.submit(people.employee, people.technician, recall_number=first.recall_number)

    result = lifecycle.archive(db, second.id, actor=factory.actor(people.admin), force=True, clock=clock)
    db.commit()
    assert result.outgoing_ids == ()
    assert result.equipment_id is None
    assert db.get(models.Equipment, first.equipment_id) is not None


def test_failed_force_delete_keeps_everything(db, factory, people, monkeypatch):
    record, release = _released(db, factory, people)
    record_id, release_id = record.id, release.id
    original_delete = db.delete

    def failing_delete(instance):
        if isinstance(instance, models.IncomingRecord):
            raise SQLAlchemyError("simulated storage failure")
        return original_delete(instance)

    monkeypatch.setattr(db, "delete", failing_delete)
    with pytest.raises(CascadeIntegrityError) as exc:
        lifecycle.archive(db, record_id, actor=factory.actor(people.admin), force=True, clock=factory.clock)
    assert exc.value.code == "cascade_integrity"
    assert exc.value.status_code == 500
    assert exc.value.context["outgoing_removed"] is True

    assert db.get(models.IncomingRecord, record_id) is not None
    assert db.get(models.OutgoingRecord, release_id) is not None


def test_archive_and_restore_round_trip(db, factory, people):
    record = factory.submit(people.employee, people.technician)
    admin = factory.actor(people.admin)

    result = lifecycle.archive(db, record.id, actor=admin, clock=factory.clock)
    db.commit()
    assert result == lifecycle.Archived(incoming_id=record.id)
    with pytest.raises(NotFoundError):
        incoming.get_incoming(db, record.id)
    assert [r.id for r in lifecycle.archived_incoming(db, actor=admin).all()] == [record.id]

    lifecycle.restore(db, record.id, actor=admin, clock=factory.clock)
    db.commit()
    assert incoming.get_incoming(db, record.id).deleted_at is None
    assert lifecycle.archived_incoming(db, actor=admin).count() == 0


def test_restore_refuses_a_second_open_cycle(db, factory, people):
    archived = factory.submit(people.employee, people.technician, serial_number="SN-CYCLE")
    lifecycle.archive(db, archived.id, actor=factory.actor(people.admin), clock=factory.clock)
    db.commit()
    replacement = factory.submit(people.employee, people.technician, serial_number="SN-CYCLE")

    with pytest.raises(ConflictError) as exc:
        lifecycle.restore(db, archived.id, actor=factory.actor(people.admin), clock=factory.clock)
    assert exc.value.code == "open_cycle"
    assert exc.value.context["incoming_id"] == str(replacement.id)


def test_employees_cannot_archive(db, factory, people):
    record = factory.submit(people.employee, people.technician)
    with pytest.raises(ForbiddenError):
        lifecycle.archive(db, record.id, actor=factory.actor(people.employee), clock=factory.clock)


def test_archive_and_restore_release(db, factory, people):
    _, release = _released(db, factory, people)
    technician = factory.actor(people.technician)

    lifecycle.archive_outgoing(db, release.id, actor=technician, clock=factory.clock)
    db.commit()
    assert outgoing.list_ready_for_pickup(db, actor=technician).count() == 0
    assert [r.id for r in lifecycle.archived_outgoing(db, actor=technician).all()] == [release.id]

    lifecycle.restore_outgoing(db, release.id, actor=technician, clock=factory.clock)
    db.commit()
    assert outgoing.list_ready_for_pickup(db, actor=technician).count() == 1

    with pytest.raises(NotFoundError):
        lifecycle.restore_outgoing(db, release.id, actor=technician, clock=factory.clock)


def test_delete_route_reports_the_outcome(client, db, factory, people):
    record, release = _released(db, factory, people)
    url = f"/api/tracking/incoming/{record.id}"

    blocked = client.delete(url, headers=factory.headers(people.technician))
    assert blocked.status_code == 422
    assert blocked.json()["code"] == "has_outgoing"

    removed = client.delete(url, params={"force": "true"}, headers=factory.headers(people.admin))
    assert removed.status_code == 200
    body = removed.json()
    assert body["result"] == "force_deleted"
    assert body["outgoing_ids"] == [str(release.id)]

    gone = client.post(f"{url}/restore", headers=factory.headers(people.admin))
    assert gone.status_code == 404
    assert gone.json()["code"] == "archived_not_found"
