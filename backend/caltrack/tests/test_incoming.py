from datetime import date

import pytest

from caltrack import models
from caltrack.clock import as_utc
from caltrack.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from caltrack.services import incoming
from caltrack.services.lifecycle import RECALL_NUMBER_PATTERN


def test_submit_issues_recall_number_and_awaits_confirmation(db, factory, people, clock):
    record = factory.submit(people.employee, people.technician)

    assert RECALL_NUMBER_PATTERN.match(record.recall_number)
    assert record.recall_number.startswith("RCL-2024-")
    assert record.status == models.INCOMING_FOR_CONFIRMATION
    assert as_utc(record.date_in) == clock()
    assert record.employee_in_id == people.employee.id
    assert record.technician_id == people.technician.id
    assert record.received_by_id is None
    assert record.equipment.recall_number == record.recall_number


def test_technician_submission_is_attributed_to_the_technician(db, factory, people):
    record = factory.submit(
        people.technician,
        people.technician,
        technician_id=people.other_technician.id,
        received_by_id=people.admin.id,
    )
    assert record.technician_id == people.technician.id
    assert record.received_by_id == people.technician.id


def test_submit_reports_missing_fields(db, factory, people):
    payload = factory.request_payload(people.technician, description="  ", serial_number=None)
    with pytest.raises(ValidationError) as exc:
        incoming.submit(db, payload, actor=factory.actor(people.employee), clock=factory.clock)
    assert exc.value.code == "required"
    assert exc.value.field == "description"
    assert exc.value.context["missing"] == ["description", "serial_number"]


def test_submit_rejects_a_non_technician_assignee(db, factory, people):
    payload = factory.request_payload(people.coworker)
    with pytest.raises(ValidationError) as exc:
        incoming.submit(db, payload, actor=factory.actor(people.employee), clock=factory.clock)
    assert exc.value.code == "not_a_technician"


def test_second_open_request_for_same_asset_conflicts(db, factory, people):
    first = factory.submit(people.employee, people.technician, serial_number="SN-OPEN")
    with pytest.raises(ConflictError) as exc:
        factory.submit(people.coworker, people.technician, serial_number="SN-OPEN")
    assert exc.value.code == "open_cycle"
    assert exc.value.context["incoming_id"] == str(first.id)
    db.rollback()


def test_routine_request_needs_a_known_recall_number(db, factory, people):
    actor = factory.actor(people.employee)
    with pytest.raises(ValidationError) as exc:
        incoming.submit(
            db,
            factory.request_payload(people.technician, request_type="routine"),
            actor=actor,
            clock=factory.clock,
        )
    assert exc.value.field == "recall_number"

    with pytest.raises(NotFoundError):
        incoming.submit(
            db,
            factory.request_payload(people.technician, request_type="routine", recall_number="RCL-2024-999999"),
            actor=actor,
            clock=factory.clock,
        )


def test_edit_by_someone_else_is_forbidden(db, factory, people):
    record = factory.submit(people.employee, people.technician)
    payload = factory.request_payload(people.technician, description="Changed")
    with pytest.raises(ForbiddenError) as exc:
        incoming.edit(db, record.id, payload, actor=factory.actor(people.coworker), clock=factory.clock)
    assert exc.value.code == "not_owner"


def test_edit_keeps_owner_and_status(db, factory, people, clock):
    record = factory.submit(people.employee, people.technician, serial_number="SN-EDIT")
    clock.advance(hours=2)
    payload = factory.request_payload(
        people.other_technician,
        serial_number="SN-EDIT",
        description="Digital caliper",
        status=models.INCOMING_COMPLETED,
        employee_id=people.coworker.id,
    )
    incoming.edit(db, record.id, payload, actor=factory.actor(people.employee), clock=clock)
    db.commit()
    db.refresh(record)

    assert record.description == "Digital caliper"
    assert record.technician_id == people.other_technician.id
    assert record.status == models.INCOMING_FOR_CONFIRMATION
    assert record.employee_in_id == people.employee.id
    assert as_utc(record.updated_at) == clock()


def test_employee_edit_keeps_staff_intake_receiver(db, factory, people):
    record = factory.submit(
        people.admin,
        people.technician,
        employee_id=people.employee.id,
        received_by_id=people.admin.id,
    )
    assert record.employee_in_id == people.employee.id
    assert record.received_by_id == people.admin.id

    payload = factory.request_payload(
        people.technician, serial_number=record.serial_number, description="Bench scale"
    )
    incoming.edit(db, record.id, payload, actor=factory.actor(people.employee), clock=factory.clock)
    db.commit()
    db.refresh(record)

    assert record.description == "Bench scale"
    assert record.received_by_id == people.admin.id


def test_edit_cannot_change_recall_number(db, factory, people):
    record = factory.submit(people.employee, people.technician)
    payload = factory.request_payload(people.technician, recall_number="RCL-2024-000777")
    with pytest.raises(ValidationError) as exc:
        incoming.edit(db, record.id, payload, actor=factory.actor(people.employee), clock=factory.clock)
    assert exc.value.code == "recall_number_immutable"


def test_edit_after_confirmation_is_rejected(db, factory, people):
    record = factory.submit(people.employee, people.technician, description="Caliper")
    incoming.confirm(db, record.id, actor=factory.actor(people.technician), clock=factory.clock)
    db.commit()

    payload = factory.request_payload(people.technician, description="Micrometer")
    with pytest.raises(ForbiddenError) as exc:
        incoming.edit(db, record.id, payload, actor=factory.actor(people.employee), clock=factory.clock)
    assert exc.value.code == "edit_window_closed"
    db.rollback()
    db.refresh(record)
    assert record.description == "Caliper"
    assert record.status == models.INCOMING_PENDING_CALIBRATION


def test_confirm_rules(db, factory, people):
    record = factory.submit(people.employee, people.technician)

    with pytest.raises(ForbiddenError) as exc:
        incoming.confirm(db, record.id, actor=factory.actor(people.employee), clock=factory.clock)
    assert exc.value.code == "role_required"

    with pytest.raises(ForbiddenError) as exc:
        incoming.confirm(db, record.id, actor=factory.actor(people.other_technician), clock=factory.clock)
    assert exc.value.code == "not_assigned"

    incoming.confirm(db, record.id, actor=factory.actor(people.technician), clock=factory.clock)
    db.commit()
    assert record.status == models.INCOMING_PENDING_CALIBRATION
    assert record.received_by_id == people.technician.id
    assert record.equipment.status == "calibration"

    with pytest.raises(ValidationError) as exc:
        incoming.confirm(db, record.id, actor=factory.actor(people.admin), clock=factory.clock)
    assert exc.value.code == "not_for_confirmation"


def test_view_permissions(db, factory, people):
    record = factory.submit(people.employee, people.technician)

    assert incoming.view(db, record.id, actor=factory.actor(people.employee)).id == record.id
    assert incoming.view(db, record.id, actor=factory.actor(people.technician)).id == record.id
    assert incoming.view(db, record.id, actor=factory.actor(people.admin)).id == record.id
    with pytest.raises(ForbiddenError):
        incoming.view(db, record.id, actor=factory.actor(people.coworker))
    with pytest.raises(ForbiddenError):
        incoming.view(db, record.id, actor=factory.actor(people.other_technician))


def test_staff_listings_are_scoped(db, factory, people):
    mine = factory.submit(people.employee, people.technician, due_date=date(2023, 12, 1))
    theirs = factory.submit(people.coworker, people.other_technician, due_date=date(2024, 3, 1))
    for record, technician in ((mine, people.technician), (theirs, people.other_technician)):
        incoming.confirm(db, record.id, actor=factory.actor(technician), clock=factory.clock)
    db.commit()

    pending = incoming.list_pending_calibration(db, actor=factory.actor(people.technician)).all()
    assert [r.id for r in pending] == [mine.id]

    everything = incoming.list_pending_calibration(db, actor=factory.actor(people.admin)).all()
    assert [r.id for r in everything] == [mine.id, theirs.id]

    overdue = incoming.list_overdue(db, actor=factory.actor(people.admin), as_of=date(2024, 1, 1)).all()
    assert [r.id for r in overdue] == [mine.id]

    with pytest.raises(ForbiddenError):
        incoming.list_pending_calibration(db, actor=factory.actor(people.employee))


def test_request_route_creates_then_edits(client, factory, people):
    headers = factory.headers(people.employee)
    body = {
        "technician_id": str(people.technician.id),
        "description": "Dial indicator",
        "serial_number": "DI-100",
        "manufacturer": "Starrett",
    }
    created = client.post("/api/tracking/incoming/requests", json=body, headers=headers)
    assert created.status_code == 201
    data = created.json()
    assert data["status"] == models.INCOMING_FOR_CONFIRMATION
    assert data["technician"]["full_name"] == "Tom Tech"

    body.update({"edit_id": data["id"], "description": "Dial test indicator"})
    edited = client.post("/api/tracking/incoming/requests", json=body, headers=headers)
    assert edited.status_code == 200
    assert edited.json()["id"] == data["id"]
    assert edited.json()["description"] == "Dial test indicator"

    mine = client.get(
        "/api/tracking/incoming/mine",
        params={"status": models.INCOMING_FOR_CONFIRMATION, "q": "dial"},
        headers=headers,
    )
    assert mine.status_code == 200
    assert mine.json()["total"] == 1

    pending = client.get("/api/tracking/incoming/mine/pending-confirmation", headers=headers)
    assert [item["id"] for item in pending.json()] == [data["id"]]


def test_request_route_reports_field_errors(client, factory, people):
    response = client.post(
        "/api/tracking/incoming/requests",
        json={"description": "Gauge", "serial_number": "G-1"},
        headers=factory.headers(people.employee),
    )
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "required"
    assert body["errors"] == {"technician_id": "Technician is required"}


def test_verify_pin_route(client, factory, people):
    url = "/api/tracking/employees/verify-pin"
    employee_headers = factory.headers(people.employee)

    wrong = client.post(url, json={"employee_id": str(people.coworker.id), "pin": "0000"}, headers=employee_headers)
    assert wrong.status_code == 401
    assert wrong.json()["code"] == "invalid_pin"

    right = client.post(
        url, json={"employee_id": str(people.coworker.id), "pin": people.pin}, headers=employee_headers
    )
    assert right.status_code == 200
    assert right.json()["employee"]["full_name"] == "Carl Coworker"

    badge = client.post(url, json={"employee_id": str(people.coworker.id)}, headers=factory.headers(people.technician))
    assert badge.status_code == 200
    assert badge.json()["verified"] is True


def test_recall_number_route_is_staff_only(client, factory, people):
    issued = client.post("/api/tracking/recall-numbers", headers=factory.headers(people.technician))
    assert issued.status_code == 201
    assert RECALL_NUMBER_PATTERN.match(issued.json()["recall_number"])

    denied = client.post("/api/tracking/recall-numbers", headers=factory.headers(people.employee))
    assert denied.status_code == 403
