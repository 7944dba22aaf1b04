"""Canonical registry of physical assets under calibration control."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .. import models
from ..database import flush_unique
from ..errors import ConflictError, NotFoundError, ValidationError

# purpose: resolve, create and merge Equipment rows on behalf of intake and release
# status: active
# depends_on: backend.caltrack.models.Equipment

logger = logging.getLogger(__name__)

# intake attributes merged into an existing asset when a new cycle supplies them
_MERGEABLE_FIELDS = (
    "serial_number",
    "description",
    "manufacturer",
    "model",
    "plant_id",
    "department_id",
    "location_id",
)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _recall_taken(recall_number: str | None) -> ConflictError:
    return ConflictError(
        f"Recall number {recall_number} is already assigned",
        field="recall_number",
        code="recall_number_taken",
    )


def _concurrent_update(equipment_id: UUID) -> ConflictError:
    logger.warning("Concurrent update on equipment %s", equipment_id)
    return ConflictError(
        "Equipment was updated by another request; retry the operation",
        field="equipment_id",
        code="concurrent_update",
    )


def get_equipment(db: Session, equipment_id: UUID, *, for_update: bool = False) -> models.Equipment:
    equipment = db.get(models.Equipment, equipment_id, with_for_update=for_update or None)
    if equipment is None or equipment.deleted_at is not None:
        raise NotFoundError("Equipment not found", field="equipment_id", code="equipment_not_found")
    return equipment


def find_by_recall_number(
    db: Session, recall_number: str, *, include_archived: bool = False
) -> models.Equipment | None:
    query = db.query(models.Equipment).filter(models.Equipment.recall_number == recall_number.strip())
    if not include_archived:
        query = query.filter(models.Equipment.deleted_at.is_(None))
    return query.first()


def find_or_create(
    db: Session,
    *,
    recall_number: str | None,
    serial_number: str | None,
    attrs: dict[str, Any],
) -> tuple[models.Equipment, bool]:
    """Return ``(equipment, created)`` for an intake.

    A supplied recall number is authoritative: the asset carrying it is
    reused, otherwise a new asset is registered under it. Without a recall
    number the serial number identifies the asset.
    """

    recall_number = recall_number.strip() if _present(recall_number) else None
    equipment: models.Equipment | None = None
    if recall_number:
        equipment = find_by_recall_number(db, recall_number, include_archived=True)
        if equipment is not None and equipment.deleted_at is not None:
            raise ConflictError(
                f"Recall number {recall_number} belongs to an archived asset",
                field="recall_number",
                code="recall_number_taken",
            )
    elif _present(serial_number):
        equipment = (
            db.query(models.Equipment)
            .filter(
                models.Equipment.serial_number == serial_number.strip(),
                models.Equipment.deleted_at.is_(None),
            )
            .order_by(models.Equipment.created_at.desc())
            .first()
        )

    if equipment is not None:
        return equipment, False

    equipment = models.Equipment(
        recall_number=recall_number,
        serial_number=(serial_number or "").strip(),
        status="active",
        **{key: value for key, value in attrs.items() if key in _MERGEABLE_FIELDS and key != "serial_number"},
    )
    db.add(equipment)
    flush_unique(db, _recall_taken(recall_number))
    logger.info("Registered equipment %s (recall %s)", equipment.id, recall_number or "-")
    return equipment, True


def apply_calibration_update(
    db: Session,
    equipment_id: UUID,
    *,
    due_date: date | None = None,
    process_range: tuple[str | None, str | None] = (None, None),
    last_calibration_date: date | None = None,
    status: str | None = None,
    attrs: dict[str, Any] | None = None,
) -> models.Equipment:
    """Merge new intake or release values into the asset.

    Only non-empty values overwrite; anything the caller leaves blank keeps
    the value a previous cycle recorded. The row is locked for the merge and
    its version column turns a lost update into a ``ConflictError``.
    """

    try:
        equipment = get_equipment(db, equipment_id, for_update=True)
    except StaleDataError as exc:
        raise _concurrent_update(equipment_id) from exc
    updates: dict[str, Any] = {
        "next_calibration_due": due_date,
        "process_range_start": process_range[0],
        "process_range_end": process_range[1],
        "last_calibration_date": last_calibration_date,
        "status": status,
    }
    for key, value in (attrs or {}).items():
        if key in _MERGEABLE_FIELDS:
            updates[key] = value
    changed = False
    for key, value in updates.items():
        if _present(value) and getattr(equipment, key) != value:
            setattr(equipment, key, value.strip() if isinstance(value, str) else value)
            changed = True
    if changed:
        try:
            db.flush()
        except StaleDataError as exc:
            raise _concurrent_update(equipment_id) from exc
    return equipment


def assign_recall_number(db: Session, equipment: models.Equipment, recall_number: str) -> None:
    if equipment.recall_number == recall_number:
        return
    if equipment.recall_number:
        raise ConflictError(
            f"Equipment already carries recall number {equipment.recall_number}",
            field="recall_number",
            code="recall_number_taken",
        )
    holder = find_by_recall_number(db, recall_number, include_archived=True)
    if holder is not None and holder.id != equipment.id:
        raise _recall_taken(recall_number)
    equipment.recall_number = recall_number
    flush_unique(db, _recall_taken(recall_number))


def search_equipment(db: Session, q: str | None = None, status: str | None = None):
    """Ordered query over live assets for the registry listing."""

    query = db.query(models.Equipment).filter(models.Equipment.deleted_at.is_(None))
    if q:
        like = f"%{q.strip().lower()}%"
        query = query.filter(
            sa.or_(
                sa.func.lower(models.Equipment.recall_number).like(like),
                sa.func.lower(models.Equipment.serial_number).like(like),
                sa.func.lower(models.Equipment.description).like(like),
                sa.func.lower(models.Equipment.model).like(like),
                sa.func.lower(models.Equipment.manufacturer).like(like),
            )
        )
    if status:
        if status not in models.EQUIPMENT_STATUSES:
            raise ValidationError(
                f"Unknown equipment status {status}",
                field="status",
                code="invalid_status",
                context={"allowed": list(models.EQUIPMENT_STATUSES)},
            )
        query = query.filter(models.Equipment.status == status)
    return query.order_by(models.Equipment.created_at.desc(), models.Equipment.id.asc())
