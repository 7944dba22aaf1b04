"""Intake side of the calibration cycle."""

from __future__ import annotations

import logging
import random
from datetime import date, timedelta
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session, joinedload

from .. import audit, directory, models, schemas
from ..clock import Clock, start_of_day, utcnow
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..rbac import Actor, Attribution, require_role, resolve_attribution
from . import equipment_registry, lifecycle

# purpose: submit, edit, confirm and list incoming calibration requests
# status: active
# depends_on: backend.caltrack.services.equipment_registry, backend.caltrack.services.lifecycle

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("technician_id", "description", "serial_number")

_EDITABLE_FIELDS = (
    "location_id",
    "serial_number",
    "description",
    "model",
    "manufacturer",
    "due_date",
    "calibration_date",
    "expected_due_date",
    "notes",
)


def _clean(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _load_options():
    return (
        joinedload(models.IncomingRecord.equipment),
        joinedload(models.IncomingRecord.technician),
        joinedload(models.IncomingRecord.received_by),
        joinedload(models.IncomingRecord.employee_in),
        joinedload(models.IncomingRecord.location),
    )


def get_incoming(
    db: Session, incoming_id: UUID, *, include_archived: bool = False
) -> models.IncomingRecord:
    record = db.get(models.IncomingRecord, incoming_id)
    if record is None or (record.deleted_at is not None and not include_archived):
        raise NotFoundError("Incoming record not found", field="incoming_id", code="incoming_not_found")
    return record


def _validate_required(payload: schemas.IncomingRequestIn, attribution: Attribution) -> None:
    values = {
        "technician_id": attribution.technician_id,
        "description": _clean(payload.description),
        "serial_number": _clean(payload.serial_number),
    }
    missing = [name for name in _REQUIRED_FIELDS if values[name] is None]
    if missing:
        labels = {
            "technician_id": "Technician is required",
            "description": "Equipment description is required",
            "serial_number": "Serial number is required",
        }
        raise ValidationError(
            labels[missing[0]],
            field=missing[0],
            code="required",
            context={"missing": missing},
        )


def _resolve_people(db: Session, attribution: Attribution) -> None:
    technician = directory.resolve_employee(db, attribution.technician_id, field="technician_id")
    if technician.role not in (models.ROLE_TECHNICIAN, models.ROLE_ADMIN):
        raise ValidationError(
            "Selected technician is not a calibration technician",
            field="technician_id",
            code="not_a_technician",
        )
    if attribution.received_by_id is not None:
        directory.resolve_employee(db, attribution.received_by_id, field="received_by_id")


def _resolve_requester(db: Session, actor: Actor, payload: schemas.IncomingRequestIn) -> UUID:
    if actor.is_staff and payload.employee_id is not None:
        return directory.resolve_employee(db, payload.employee_id, field="employee_id").id
    return actor.employee_id


def _equipment_attrs(payload: schemas.IncomingRequestIn, location: models.Location | None) -> dict:
    attrs = {
        "serial_number": _clean(payload.serial_number),
        "description": _clean(payload.description),
        "model": _clean(payload.model),
        "manufacturer": _clean(payload.manufacturer),
        "location_id": payload.location_id,
    }
    if location is not None and location.department_id is not None:
        attrs["department_id"] = location.department_id
    return attrs


def submit(
    db: Session,
    payload: schemas.IncomingRequestIn,
    *,
    actor: Actor,
    clock: Clock = utcnow,
    rng: random.Random | None = None,
) -> models.IncomingRecord:
    """Create an intake in ``for_confirmation`` and register or update its asset."""

    attribution = resolve_attribution(actor, payload.technician_id, payload.received_by_id)
    _validate_required(payload, attribution)
    _resolve_people(db, attribution)
    employee_in_id = _resolve_requester(db, actor, payload)
    location = directory.resolve_location(db, payload.location_id)

    recall_number = _clean(payload.recall_number)
    if payload.request_type == "routine":
        if recall_number is None:
            raise ValidationError(
                "Recall number is required for routine calibration requests",
                field="recall_number",
                code="required",
            )
        if equipment_registry.find_by_recall_number(db, recall_number) is None:
            raise NotFoundError(
                f"Equipment with recall number {recall_number} not found",
                field="recall_number",
                code="equipment_not_found",
            )

    attrs = _equipment_attrs(payload, location)
    equipment, created = equipment_registry.find_or_create(
        db,
        recall_number=recall_number,
        serial_number=attrs["serial_number"],
        attrs=attrs,
    )
    if not created:
        lifecycle.ensure_no_open_cycle(db, equipment.id)

    if recall_number is None:
        recall_number = equipment.recall_number or lifecycle.issue_recall_number(db, clock=clock, rng=rng)
        equipment_registry.assign_recall_number(db, equipment, recall_number)

    equipment_registry.apply_calibration_update(
        db,
        equipment.id,
        due_date=payload.due_date,
        process_range=(payload.process_range_start, payload.process_range_end),
        attrs=None if created else attrs,
    )

    now = clock()
    record = models.IncomingRecord(
        recall_number=recall_number,
        equipment_id=equipment.id,
        technician_id=attribution.technician_id,
        received_by_id=attribution.received_by_id,
        employee_in_id=employee_in_id,
        location_id=payload.location_id,
        serial_number=attrs["serial_number"],
        description=attrs["description"],
        model=attrs["model"],
        manufacturer=attrs["manufacturer"],
        due_date=payload.due_date,
        calibration_date=payload.calibration_date,
        expected_due_date=payload.expected_due_date,
        date_in=now,
        status=models.INCOMING_FOR_CONFIRMATION,
        notes=_clean(payload.notes),
        created_at=now,
        updated_at=now,
    )
    db.add(record)
    db.flush()
    audit.log_action(
        db,
        actor.employee_id,
        "submit_incoming",
        "incoming_record",
        record.id,
        {"recall_number": recall_number, "equipment_created": created},
        at=now,
    )
    logger.info("Incoming record %s submitted for %s", record.id, recall_number)
    return record


def edit(
    db: Session,
    incoming_id: UUID,
    payload: schemas.IncomingRequestIn,
    *,
    actor: Actor,
    clock: Clock = utcnow,
) -> models.IncomingRecord:
    """Self-service edit while the request still awaits confirmation.

    The submitting employee and the status never change here, whatever the
    payload carries.
    """

    record = get_incoming(db, incoming_id)
    if record.employee_in_id != actor.employee_id:
        raise ForbiddenError(
            "Only the employee who submitted this request may edit it",
            field="employee_id",
            code="not_owner",
        )
    if record.status != models.INCOMING_FOR_CONFIRMATION:
        raise ForbiddenError(
            "This request can no longer be edited",
            field="status",
            code="edit_window_closed",
            context={"status": record.status},
        )

    attribution = resolve_attribution(actor, payload.technician_id, payload.received_by_id)
    _validate_required(payload, attribution)
    _resolve_people(db, attribution)
    location = directory.resolve_location(db, payload.location_id)

    recall_number = _clean(payload.recall_number)
    if recall_number is not None and recall_number != record.recall_number:
        raise ValidationError(
            "Recall number cannot be changed once issued",
            field="recall_number",
            code="recall_number_immutable",
        )

    attrs = _equipment_attrs(payload, location)
    values = {
        "location_id": payload.location_id,
        "serial_number": attrs["serial_number"],
        "description": attrs["description"],
        "model": attrs["model"],
        "manufacturer": attrs["manufacturer"],
        "due_date": payload.due_date,
        "calibration_date": payload.calibration_date,
        "expected_due_date": payload.expected_due_date,
        "notes": _clean(payload.notes),
    }
    for name in _EDITABLE_FIELDS:
        setattr(record, name, values[name])
    record.technician_id = attribution.technician_id
    if actor.is_staff:
        record.received_by_id = attribution.received_by_id
    record.updated_at = clock()

    equipment_registry.apply_calibration_update(
        db,
        record.equipment_id,
        due_date=payload.due_date,
        process_range=(payload.process_range_start, payload.process_range_end),
        attrs=attrs,
    )
    db.flush()
    audit.log_action(db, actor.employee_id, "edit_incoming", "incoming_record", record.id, at=clock())
    return record


def submit_or_edit(
    db: Session,
    payload: schemas.IncomingRequestIn,
    *,
    actor: Actor,
    clock: Clock = utcnow,
    rng: random.Random | None = None,
) -> tuple[models.IncomingRecord, bool]:
    """Entry point for the intake form; returns ``(record, created)``."""

    if payload.edit_id is not None:
        return edit(db, payload.edit_id, payload, actor=actor, clock=clock), False
    return submit(db, payload, actor=actor, clock=clock, rng=rng), True


def view(db: Session, incoming_id: UUID, *, actor: Actor) -> models.IncomingRecord:
    record = get_incoming(db, incoming_id, include_archived=actor.is_admin)
    if actor.is_admin or record.employee_in_id == actor.employee_id:
        return record
    if actor.is_technician and actor.employee_id in (record.technician_id, record.received_by_id):
        return record
    raise ForbiddenError("You do not have access to this request", code="not_owner")


def confirm(
    db: Session,
    incoming_id: UUID,
    *,
    actor: Actor,
    received_by_id: UUID | None = None,
    clock: Clock = utcnow,
) -> models.IncomingRecord:
    """Move a request from ``for_confirmation`` to ``pending_calibration``."""

    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    record = get_incoming(db, incoming_id)
    if actor.is_technician and actor.employee_id not in (record.technician_id, record.received_by_id):
        raise ForbiddenError(
            "Only the assigned technician may confirm this request",
            field="technician_id",
            code="not_assigned",
        )
    if record.status != models.INCOMING_FOR_CONFIRMATION:
        raise ValidationError(
            "Only requests awaiting confirmation can be confirmed",
            field="status",
            code="not_for_confirmation",
            context={"status": record.status},
        )

    if actor.is_technician:
        record.received_by_id = actor.employee_id
    elif received_by_id is not None:
        record.received_by_id = directory.resolve_employee(db, received_by_id, field="received_by_id").id
    elif record.received_by_id is None:
        record.received_by_id = actor.employee_id

    record.status = models.INCOMING_PENDING_CALIBRATION
    record.updated_at = clock()
    equipment_registry.apply_calibration_update(db, record.equipment_id, status="calibration")
    db.flush()
    audit.log_action(db, actor.employee_id, "confirm_incoming", "incoming_record", record.id, at=clock())
    return record


def verify_employee_pin(db: Session, *, actor: Actor, employee_id: UUID, pin: str | None) -> models.User:
    """Identify the employee handing in an item.

    Staff scanning a badge at the counter only need the employee to exist;
    anyone else must know the employee's PIN.
    """

    if actor.is_staff:
        return directory.resolve_employee(db, employee_id)
    return directory.verify_pin(db, employee_id, pin)


def _live():
    return models.IncomingRecord.deleted_at.is_(None)


def list_for_employee(
    db: Session,
    *,
    actor: Actor,
    q: str | None = None,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
):
    query = (
        db.query(models.IncomingRecord)
        .options(*_load_options())
        .filter(models.IncomingRecord.employee_in_id == actor.employee_id, _live())
    )
    if q:
        like = f"%{q.strip().lower()}%"
        query = query.filter(
            sa.or_(
                sa.func.lower(models.IncomingRecord.recall_number).like(like),
                sa.func.lower(models.IncomingRecord.description).like(like),
                sa.func.lower(models.IncomingRecord.serial_number).like(like),
                sa.func.lower(models.IncomingRecord.model).like(like),
                sa.func.lower(models.IncomingRecord.manufacturer).like(like),
            )
        )
    if status:
        query = query.filter(models.IncomingRecord.status == status)
    if date_from:
        query = query.filter(models.IncomingRecord.date_in >= start_of_day(date_from))
    if date_to:
        query = query.filter(models.IncomingRecord.date_in < start_of_day(date_to + timedelta(days=1)))
    return query.order_by(models.IncomingRecord.date_in.desc(), models.IncomingRecord.id.asc())


def list_pending_confirmation(db: Session, *, actor: Actor):
    return (
        db.query(models.IncomingRecord)
        .options(*_load_options())
        .filter(
            models.IncomingRecord.employee_in_id == actor.employee_id,
            models.IncomingRecord.status == models.INCOMING_FOR_CONFIRMATION,
            _live(),
        )
        .order_by(models.IncomingRecord.date_in.desc(), models.IncomingRecord.id.asc())
    )


def _staff_scope(query, actor: Actor):
    if actor.is_technician:
        query = query.filter(
            sa.or_(
                models.IncomingRecord.technician_id == actor.employee_id,
                models.IncomingRecord.received_by_id == actor.employee_id,
            )
        )
    return query


def list_pending_calibration(db: Session, *, actor: Actor):
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    query = (
        db.query(models.IncomingRecord)
        .options(*_load_options())
        .filter(models.IncomingRecord.status == models.INCOMING_PENDING_CALIBRATION, _live())
    )
    return _staff_scope(query, actor).order_by(
        models.IncomingRecord.due_date.is_(None),
        models.IncomingRecord.due_date.asc(),
        models.IncomingRecord.id.asc(),
    )


def list_overdue(db: Session, *, actor: Actor, as_of: date):
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    query = (
        db.query(models.IncomingRecord)
        .options(*_load_options())
        .filter(
            models.IncomingRecord.due_date < as_of,
            models.IncomingRecord.status != models.INCOMING_COMPLETED,
            _live(),
        )
    )
    return _staff_scope(query, actor).order_by(
        models.IncomingRecord.due_date.asc(), models.IncomingRecord.id.asc()
    )
