"""Release side of the calibration cycle."""

from __future__ import annotations

import logging
import random
from datetime import date, datetime, timedelta
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session, aliased, joinedload

from .. import audit, config, directory, models, notify, schemas
from ..clock import Clock, as_utc, day_span, start_of_day, utcnow
from ..database import flush_unique
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..rbac import Actor, require_role
from . import equipment_registry, lifecycle

# purpose: complete calibrations, confirm pickups and list release records
# status: active
# depends_on: backend.caltrack.services.equipment_registry, backend.caltrack.directory

logger = logging.getLogger(__name__)


def _load_options():
    return (
        joinedload(models.OutgoingRecord.incoming).joinedload(models.IncomingRecord.equipment),
        joinedload(models.OutgoingRecord.incoming).joinedload(models.IncomingRecord.employee_in),
        joinedload(models.OutgoingRecord.released_by),
        joinedload(models.OutgoingRecord.employee_out),
    )


def get_outgoing(db: Session, outgoing_id: UUID, *, include_archived: bool = False) -> models.OutgoingRecord:
    record = db.get(models.OutgoingRecord, outgoing_id)
    if record is None or (record.deleted_at is not None and not include_archived):
        raise NotFoundError("Outgoing record not found", field="outgoing_id", code="outgoing_not_found")
    return record


def _existing_outgoing(db: Session, incoming_id: UUID) -> models.OutgoingRecord | None:
    return (
        db.query(models.OutgoingRecord)
        .filter(models.OutgoingRecord.incoming_id == incoming_id)
        .first()
    )


def _duplicate(incoming_id: UUID) -> ConflictError:
    return ConflictError(
        "Calibration for this request has already been completed",
        field="incoming_id",
        code="duplicate_outgoing",
        context={"incoming_id": str(incoming_id)},
    )


def check_department_match(db: Session, requester: models.User, confirmer: models.User) -> None:
    """Only staff from the requesting department may close out its calibration."""

    requester_department = directory.resolve_department(db, requester.department_id)
    confirmer_department = directory.resolve_department(db, confirmer.department_id)
    if requester_department is None or confirmer_department is None:
        missing = "requesting employee" if requester_department is None else "confirming employee"
        raise ValidationError(
            f"Department information is missing for the {missing}",
            field="confirmer_id",
            code="missing_department",
            context={"missing": missing},
        )
    if requester_department.id != confirmer_department.id:
        raise ValidationError(
            f"Department mismatch: confirming employee belongs to {confirmer_department.name} "
            f"but the request came from {requester_department.name}",
            field="confirmer_id",
            code="department_mismatch",
            context={
                "confirmer_department": confirmer_department.name,
                "requester_department": requester_department.name,
            },
        )


def derive_metrics(
    date_in: datetime,
    date_out: datetime,
    calibration_date: date,
    ct_reqd: int | None,
) -> dict:
    cycle_time = day_span(date_in, date_out)
    return {
        "cycle_time": cycle_time,
        "queuing_time": day_span(date_in, start_of_day(calibration_date)),
        "overdue": ct_reqd is not None and cycle_time > ct_reqd,
    }


def _check_dates(date_in: datetime, date_out: datetime, calibration_date: date, due_date: date) -> None:
    if as_utc(date_out) < as_utc(date_in):
        raise ValidationError(
            "Date out cannot be before the date the item came in",
            field="date_out",
            code="date_out_before_date_in",
        )
    if due_date < calibration_date:
        raise ValidationError(
            "Calibration due date cannot be before the calibration date",
            field="calibration_due_date",
            code="due_before_calibration",
        )


def _resolve_recall_number(
    db: Session,
    incoming: models.IncomingRecord,
    requested: str | None,
    *,
    clock: Clock,
    rng: random.Random | None,
) -> str:
    requested = requested.strip() if requested and requested.strip() else None
    if incoming.recall_number:
        if requested and requested != incoming.recall_number:
            raise ValidationError(
                f"Recall number does not match the request ({incoming.recall_number})",
                field="recall_number",
                code="recall_number_mismatch",
            )
        return incoming.recall_number
    equipment = incoming.equipment
    recall_number = requested or equipment.recall_number or lifecycle.issue_recall_number(db, clock=clock, rng=rng)
    equipment_registry.assign_recall_number(db, equipment, recall_number)
    incoming.recall_number = recall_number
    return recall_number


def complete(
    db: Session,
    payload: schemas.CompleteCalibrationIn,
    *,
    actor: Actor,
    clock: Clock = utcnow,
    rng: random.Random | None = None,
) -> models.OutgoingRecord:
    """Record a finished calibration and stage the item for pickup.

    Gates run in order: the request exists and was confirmed, the confirmer's PIN matches,
    the confirmer works in the requester's department, dates are coherent,
    and no release exists yet for the request.
    """

    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    incoming = db.get(models.IncomingRecord, payload.incoming_id, with_for_update=True)
    if incoming is None or incoming.deleted_at is not None:
        raise NotFoundError("Incoming record not found", field="incoming_id", code="incoming_not_found")
    if incoming.status != models.INCOMING_PENDING_CALIBRATION:
        if _existing_outgoing(db, incoming.id) is not None:
            raise _duplicate(incoming.id)
        raise ValidationError(
            "Only confirmed requests awaiting calibration can be completed",
            field="status",
            code="not_pending_calibration",
            context={"status": incoming.status},
        )

    confirmer = directory.verify_pin(db, payload.confirmer_id, payload.pin)
    requester = directory.resolve_employee(db, incoming.employee_in_id)
    check_department_match(db, requester, confirmer)

    date_in = as_utc(incoming.date_in)
    date_out = as_utc(payload.date_out) if payload.date_out else clock()
    calibration_date = payload.calibration_date or date_out.date()
    due_date = payload.calibration_due_date or calibration_date + timedelta(
        days=config.DEFAULT_CALIBRATION_INTERVAL_DAYS
    )
    _check_dates(date_in, date_out, calibration_date, due_date)
    metrics = derive_metrics(date_in, date_out, calibration_date, payload.ct_reqd)

    if _existing_outgoing(db, incoming.id) is not None:
        raise _duplicate(incoming.id)

    recall_number = _resolve_recall_number(db, incoming, payload.recall_number, clock=clock, rng=rng)
    now = clock()
    outgoing = models.OutgoingRecord(
        incoming_id=incoming.id,
        recall_number=recall_number,
        calibration_date=calibration_date,
        calibration_due_date=due_date,
        date_out=date_out,
        released_by_id=confirmer.id,
        technician_id=incoming.technician_id,
        ct_reqd=payload.ct_reqd,
        commit_etc=payload.commit_etc,
        actual_etc=payload.actual_etc,
        status=models.OUTGOING_FOR_PICKUP,
        created_at=now,
        updated_at=now,
        **metrics,
    )
    db.add(outgoing)
    flush_unique(db, _duplicate(incoming.id))

    incoming.status = models.INCOMING_COMPLETED
    incoming.updated_at = now
    equipment_registry.apply_calibration_update(
        db,
        incoming.equipment_id,
        due_date=due_date,
        last_calibration_date=calibration_date,
        process_range=(payload.process_range_start, payload.process_range_end),
        status="active",
    )
    db.flush()
    audit.log_action(
        db,
        actor.employee_id,
        "complete_calibration",
        "outgoing_record",
        outgoing.id,
        {"incoming_id": str(incoming.id), "cycle_time": metrics["cycle_time"], "overdue": metrics["overdue"]},
        at=now,
    )
    logger.info(
        "Calibration completed for incoming %s (cycle %d days, overdue=%s)",
        incoming.id,
        metrics["cycle_time"],
        metrics["overdue"],
    )
    return outgoing


def notify_requester(record: models.OutgoingRecord) -> None:
    """Mail the submitting employee once the release is committed."""

    incoming = record.incoming
    notify.notify_ready_for_pickup(incoming.employee_in, record.recall_number, incoming.description)


def confirm_pickup(
    db: Session,
    outgoing_id: UUID,
    *,
    actor: Actor,
    employee_id: UUID,
    pin: str,
    clock: Clock = utcnow,
) -> models.OutgoingRecord:
    record = get_outgoing(db, outgoing_id)
    employee = directory.verify_pin(db, employee_id, pin)
    if employee.id != record.incoming.employee_in_id:
        raise ValidationError(
            "This employee is not the original requester of the item",
            field="employee_id",
            code="not_original_requester",
        )
    if record.status != models.OUTGOING_FOR_PICKUP:
        raise ValidationError(
            "This item is not waiting for pickup",
            field="status",
            code="not_for_pickup",
            context={"status": record.status},
        )
    now = clock()
    record.status = models.OUTGOING_COMPLETED
    record.employee_out_id = employee.id
    record.picked_up_at = now
    record.updated_at = now
    db.flush()
    audit.log_action(
        db,
        actor.employee_id,
        "confirm_pickup",
        "outgoing_record",
        record.id,
        {"employee_out_id": str(employee.id)},
        at=now,
    )
    return record


def update_release(
    db: Session,
    outgoing_id: UUID,
    payload: schemas.UpdateReleaseIn,
    *,
    actor: Actor,
    clock: Clock = utcnow,
) -> models.OutgoingRecord:
    """Correct dates or planning numbers and re-derive the metrics."""

    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    record = get_outgoing(db, outgoing_id)
    if record.status == models.OUTGOING_COMPLETED and not actor.is_admin:
        raise ForbiddenError(
            "Completed releases can only be changed by an administrator",
            field="status",
            code="release_locked",
        )

    changes = payload.model_dump(exclude_unset=True)
    for name in ("ct_reqd", "commit_etc", "actual_etc"):
        if name in changes:
            setattr(record, name, changes[name])
    date_out = as_utc(changes.get("date_out") or record.date_out)
    calibration_date = changes.get("calibration_date") or record.calibration_date
    due_date = changes.get("calibration_due_date") or record.calibration_due_date
    date_in = as_utc(record.incoming.date_in)
    _check_dates(date_in, date_out, calibration_date, due_date)

    record.date_out = date_out
    record.calibration_date = calibration_date
    record.calibration_due_date = due_date
    for name, value in derive_metrics(date_in, date_out, calibration_date, record.ct_reqd).items():
        setattr(record, name, value)
    record.updated_at = clock()

    if "calibration_due_date" in changes or "calibration_date" in changes:
        equipment_registry.apply_calibration_update(
            db,
            record.incoming.equipment_id,
            due_date=due_date,
            last_calibration_date=calibration_date,
        )
    db.flush()
    audit.log_action(
        db,
        actor.employee_id,
        "update_release",
        "outgoing_record",
        record.id,
        {"fields": sorted(changes)},
        at=clock(),
    )
    return record


def view(db: Session, outgoing_id: UUID, *, actor: Actor) -> models.OutgoingRecord:
    record = get_outgoing(db, outgoing_id, include_archived=actor.is_admin)
    if actor.is_staff or actor.employee_id in (record.incoming.employee_in_id, record.employee_out_id):
        return record
    raise ForbiddenError("You do not have access to this release", code="not_owner")


def _scoped(db: Session, actor: Actor):
    """Live releases visible to ``actor``; non-admins see their own department."""

    query = (
        db.query(models.OutgoingRecord)
        .join(models.IncomingRecord, models.OutgoingRecord.incoming_id == models.IncomingRecord.id)
        .options(*_load_options())
        .filter(models.OutgoingRecord.deleted_at.is_(None))
    )
    if actor.is_admin:
        return query
    if actor.department_id is None:
        return query.filter(models.IncomingRecord.employee_in_id == actor.employee_id)
    requester = aliased(models.User)
    return query.join(requester, models.IncomingRecord.employee_in_id == requester.id).filter(
        requester.department_id == actor.department_id
    )


def list_ready_for_pickup(db: Session, *, actor: Actor):
    return (
        _scoped(db, actor)
        .filter(models.OutgoingRecord.status == models.OUTGOING_FOR_PICKUP)
        .order_by(models.OutgoingRecord.date_out.desc(), models.OutgoingRecord.id.asc())
    )


def list_completed(db: Session, *, actor: Actor):
    return (
        _scoped(db, actor)
        .filter(models.OutgoingRecord.status == models.OUTGOING_COMPLETED)
        .order_by(models.OutgoingRecord.date_out.desc(), models.OutgoingRecord.id.asc())
    )


def list_due_for_recalibration(db: Session, *, actor: Actor, as_of: date):
    return (
        _scoped(db, actor)
        .filter(
            models.OutgoingRecord.status == models.OUTGOING_COMPLETED,
            models.OutgoingRecord.calibration_due_date <= as_of,
        )
        .order_by(models.OutgoingRecord.calibration_due_date.asc(), models.OutgoingRecord.id.asc())
    )


def list_due_soon(db: Session, *, actor: Actor, as_of: date, days: int | None = None):
    window = config.DUE_SOON_DAYS if days is None else days
    return (
        _scoped(db, actor)
        .filter(
            models.OutgoingRecord.calibration_due_date >= as_of,
            models.OutgoingRecord.calibration_due_date <= as_of + timedelta(days=window),
        )
        .order_by(models.OutgoingRecord.calibration_due_date.asc(), models.OutgoingRecord.id.asc())
    )
