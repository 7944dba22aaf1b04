"""Operations that must see both sides of an intake/release pair."""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import audit, config, models
from ..clock import Clock, utcnow
from ..errors import CascadeIntegrityError, ConflictError, NotFoundError, ValidationError
from ..rbac import Actor, require_role

# purpose: archive, restore, force delete and recall number issuance across incoming and outgoing records
# status: active
# depends_on: backend.caltrack.models.IncomingRecord, backend.caltrack.models.OutgoingRecord

logger = logging.getLogger(__name__)

RECALL_NUMBER_PATTERN = re.compile(rf"^{re.escape(config.RECALL_NUMBER_PREFIX)}-\d{{4}}-\d{{6}}$")

_OPEN_INCOMING_STATUSES = (
    models.INCOMING_FOR_CONFIRMATION,
    models.INCOMING_PENDING_CALIBRATION,
)


@dataclass(frozen=True)
class Archived:
    incoming_id: UUID
    result: str = field(default="archived", init=False)


@dataclass(frozen=True)
class ForceDeleted:
    incoming_id: UUID
    outgoing_ids: tuple[UUID, ...] = ()
    equipment_id: UUID | None = None
    result: str = field(default="force_deleted", init=False)


ArchiveResult = Archived | ForceDeleted


def recall_number_in_use(db: Session, recall_number: str) -> bool:
    """True when any asset or intake, archived or not, carries ``recall_number``."""

    on_equipment = db.query(
        sa.exists().where(models.Equipment.recall_number == recall_number)
    ).scalar()
    if on_equipment:
        return True
    return bool(
        db.query(sa.exists().where(models.IncomingRecord.recall_number == recall_number)).scalar()
    )


def issue_recall_number(
    db: Session,
    *,
    clock: Clock = utcnow,
    rng: random.Random | None = None,
    max_attempts: int | None = None,
) -> str:
    """Return an unused ``PREFIX-YYYY-NNNNNN`` recall number.

    The unique index on ``equipment.recall_number`` remains the final guard;
    this loop only avoids handing out numbers that are visibly taken.
    """

    rng = rng or random.SystemRandom()
    attempts = max_attempts or config.RECALL_NUMBER_MAX_ATTEMPTS
    year = clock().year
    for attempt in range(1, attempts + 1):
        candidate = f"{config.RECALL_NUMBER_PREFIX}-{year:04d}-{rng.randint(0, 999999):06d}"
        if not recall_number_in_use(db, candidate):
            return candidate
        logger.debug("Recall number collision on %s (attempt %d)", candidate, attempt)
    logger.warning("Recall number generator exhausted after %d attempts", attempts)
    raise ConflictError(
        "Could not generate a unique recall number; try again",
        field="recall_number",
        code="recall_number_exhausted",
        context={"attempts": attempts},
    )


def find_open_cycle(
    db: Session, equipment_id: UUID, *, exclude_incoming_id: UUID | None = None
) -> models.IncomingRecord | None:
    """Live intake for the asset that has not been handed back yet."""

    query = (
        db.query(models.IncomingRecord)
        .outerjoin(models.OutgoingRecord, models.OutgoingRecord.incoming_id == models.IncomingRecord.id)
        .filter(
            models.IncomingRecord.equipment_id == equipment_id,
            models.IncomingRecord.deleted_at.is_(None),
            sa.or_(
                models.IncomingRecord.status.in_(_OPEN_INCOMING_STATUSES),
                sa.and_(
                    models.OutgoingRecord.status == models.OUTGOING_FOR_PICKUP,
                    models.OutgoingRecord.deleted_at.is_(None),
                ),
            ),
        )
    )
    if exclude_incoming_id is not None:
        query = query.filter(models.IncomingRecord.id != exclude_incoming_id)
    return query.first()


def ensure_no_open_cycle(
    db: Session, equipment_id: UUID, *, exclude_incoming_id: UUID | None = None
) -> None:
    existing = find_open_cycle(db, equipment_id, exclude_incoming_id=exclude_incoming_id)
    if existing is not None:
        raise ConflictError(
            "This equipment already has an open calibration request",
            field="recall_number",
            code="open_cycle",
            context={"incoming_id": str(existing.id), "status": existing.status},
        )


def archive(
    db: Session,
    incoming_id: UUID,
    *,
    actor: Actor,
    force: bool = False,
    clock: Clock = utcnow,
) -> ArchiveResult:
    """Soft-delete an intake, or with ``force`` remove it and its release permanently."""

    if force:
        require_role(actor, models.ROLE_ADMIN)
    else:
        require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)

    record = db.get(models.IncomingRecord, incoming_id)
    if record is None or (record.deleted_at is not None and not force):
        raise NotFoundError("Incoming record not found", field="incoming_id", code="incoming_not_found")

    outgoing = (
        db.query(models.OutgoingRecord)
        .filter(models.OutgoingRecord.incoming_id == record.id)
        .all()
    )
    if not force:
        if outgoing:
            raise ValidationError(
                "Cannot archive: this incoming record has a related outgoing record",
                field="incoming_id",
                code="has_outgoing",
                context={"outgoing_ids": [str(o.id) for o in outgoing]},
            )
        record.deleted_at = clock()
        audit.log_action(db, actor.employee_id, "archive_incoming", "incoming_record", record.id, at=clock())
        logger.info("Archived incoming record %s", record.id)
        return Archived(incoming_id=record.id)

    return _force_delete(db, record, outgoing, actor=actor, clock=clock)


def _force_delete(
    db: Session,
    record: models.IncomingRecord,
    outgoing: list[models.OutgoingRecord],
    *,
    actor: Actor,
    clock: Clock,
) -> ForceDeleted:
    incoming_id = record.id
    equipment_id = record.equipment_id
    outgoing_ids = tuple(o.id for o in outgoing)
    outgoing_removed = False
    equipment_removed: UUID | None = None
    try:
        # children first so no release row ever points at a missing intake
        for row in outgoing:
            db.delete(row)
        db.flush()
        outgoing_removed = bool(outgoing)
        db.expire(record, ["outgoing"])

        other_history = (
            db.query(models.IncomingRecord)
            .filter(
                models.IncomingRecord.equipment_id == equipment_id,
                models.IncomingRecord.id != incoming_id,
            )
            .count()
        )
        db.delete(record)
        db.flush()

        # a released asset keeps its register entry
        if not outgoing and other_history == 0:
            equipment = db.get(models.Equipment, equipment_id)
            if equipment is not None:
                db.expire(equipment, ["incoming_records"])
                db.delete(equipment)
                db.flush()
                equipment_removed = equipment_id
    except SQLAlchemyError as exc:
        db.rollback()
        if outgoing_removed:
            logger.error(
                "Integrity incident: outgoing %s removed but incoming %s delete failed",
                [str(i) for i in outgoing_ids],
                incoming_id,
                exc_info=True,
            )
        else:
            logger.exception("Force delete of incoming %s failed", incoming_id)
        raise CascadeIntegrityError(
            "Force delete failed part way; no changes were kept",
            field="incoming_id",
            context={"incoming_id": str(incoming_id), "outgoing_removed": outgoing_removed},
        ) from exc

    audit.log_action(
        db,
        actor.employee_id,
        "force_delete_incoming",
        "incoming_record",
        incoming_id,
        {
            "outgoing_ids": [str(i) for i in outgoing_ids],
            "equipment_id": str(equipment_removed) if equipment_removed else None,
        },
        at=clock(),
    )
    logger.warning("Force deleted incoming record %s with %d outgoing", incoming_id, len(outgoing_ids))
    return ForceDeleted(incoming_id=incoming_id, outgoing_ids=outgoing_ids, equipment_id=equipment_removed)


def restore(db: Session, incoming_id: UUID, *, actor: Actor, clock: Clock = utcnow) -> models.IncomingRecord:
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    record = (
        db.query(models.IncomingRecord)
        .filter(models.IncomingRecord.id == incoming_id, models.IncomingRecord.deleted_at.isnot(None))
        .first()
    )
    if record is None:
        raise NotFoundError("Archived incoming record not found", field="incoming_id", code="archived_not_found")
    if record.status in _OPEN_INCOMING_STATUSES:
        ensure_no_open_cycle(db, record.equipment_id, exclude_incoming_id=record.id)
    record.deleted_at = None
    audit.log_action(db, actor.employee_id, "restore_incoming", "incoming_record", record.id, at=clock())
    return record


def archive_outgoing(
    db: Session, outgoing_id: UUID, *, actor: Actor, clock: Clock = utcnow
) -> models.OutgoingRecord:
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    record = db.get(models.OutgoingRecord, outgoing_id)
    if record is None or record.deleted_at is not None:
        raise NotFoundError("Outgoing record not found", field="outgoing_id", code="outgoing_not_found")
    record.deleted_at = clock()
    audit.log_action(db, actor.employee_id, "archive_outgoing", "outgoing_record", record.id, at=clock())
    return record


def restore_outgoing(
    db: Session, outgoing_id: UUID, *, actor: Actor, clock: Clock = utcnow
) -> models.OutgoingRecord:
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    record = (
        db.query(models.OutgoingRecord)
        .filter(models.OutgoingRecord.id == outgoing_id, models.OutgoingRecord.deleted_at.isnot(None))
        .first()
    )
    if record is None:
        raise NotFoundError("Archived outgoing record not found", field="outgoing_id", code="archived_not_found")
    record.deleted_at = None
    audit.log_action(db, actor.employee_id, "restore_outgoing", "outgoing_record", record.id, at=clock())
    return record


def archived_incoming(db: Session, *, actor: Actor):
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    return (
        db.query(models.IncomingRecord)
        .filter(models.IncomingRecord.deleted_at.isnot(None))
        .order_by(models.IncomingRecord.deleted_at.desc(), models.IncomingRecord.id.asc())
    )


def archived_outgoing(db: Session, *, actor: Actor):
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    return (
        db.query(models.OutgoingRecord)
        .filter(models.OutgoingRecord.deleted_at.isnot(None))
        .order_by(models.OutgoingRecord.deleted_at.desc(), models.OutgoingRecord.id.asc())
    )
