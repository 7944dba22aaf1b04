"""API routes for the release side of calibration tracking."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..clock import Clock, get_clock
from ..database import get_db, unit_of_work
from ..pagination import paginate
from ..rbac import actor_from_user
from ..services import lifecycle, outgoing
from .auth import rate_limit

# purpose: expose calibration completion, pickup and release listing endpoints
# status: active
# depends_on: backend.caltrack.services.outgoing, backend.caltrack.services.lifecycle

router = APIRouter(prefix="/api/tracking/outgoing", tags=["tracking", "outgoing"])

OutgoingPage = schemas.Page[schemas.OutgoingRecordOut]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=schemas.OutgoingRecordOut)
@rate_limit("20/minute")
def complete_calibration(
    request: Request,
    payload: schemas.CompleteCalibrationIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        record = outgoing.complete(db, payload, actor=actor_from_user(user), clock=clock)
    outgoing.notify_requester(record)
    return record


@router.get("/ready-for-pickup", response_model=OutgoingPage)
def list_ready_for_pickup(
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return paginate(outgoing.list_ready_for_pickup(db, actor=actor_from_user(user)), page, per_page)


@router.get("/completed", response_model=OutgoingPage)
def list_completed(
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return paginate(outgoing.list_completed(db, actor=actor_from_user(user)), page, per_page)


@router.get("/due-for-recalibration", response_model=OutgoingPage)
def list_due_for_recalibration(
    as_of: date | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    query = outgoing.list_due_for_recalibration(
        db, actor=actor_from_user(user), as_of=as_of or clock().date()
    )
    return paginate(query, page, per_page)


@router.get("/due-soon", response_model=OutgoingPage)
def list_due_soon(
    days: int | None = Query(default=None, ge=0, le=365),
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    query = outgoing.list_due_soon(db, actor=actor_from_user(user), as_of=clock().date(), days=days)
    return paginate(query, page, per_page)


@router.get("/archived", response_model=OutgoingPage)
def list_archived(
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return paginate(lifecycle.archived_outgoing(db, actor=actor_from_user(user)), page, per_page)


@router.get("/{outgoing_id}", response_model=schemas.OutgoingRecordOut)
def get_release(
    outgoing_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return outgoing.view(db, outgoing_id, actor=actor_from_user(user))


@router.put("/{outgoing_id}", response_model=schemas.OutgoingRecordOut)
def update_release(
    outgoing_id: UUID,
    payload: schemas.UpdateReleaseIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        record = outgoing.update_release(db, outgoing_id, payload, actor=actor_from_user(user), clock=clock)
    return record


@router.post("/{outgoing_id}/pickup", response_model=schemas.OutgoingRecordOut)
@rate_limit("10/minute")
def confirm_pickup(
    request: Request,
    outgoing_id: UUID,
    payload: schemas.PickupIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        record = outgoing.confirm_pickup(
            db,
            outgoing_id,
            actor=actor_from_user(user),
            employee_id=payload.employee_id,
            pin=payload.pin,
            clock=clock,
        )
    return record


@router.delete("/{outgoing_id}", response_model=schemas.OutgoingRecordOut)
def archive_release(
    outgoing_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        record = lifecycle.archive_outgoing(db, outgoing_id, actor=actor_from_user(user), clock=clock)
    return record


@router.post("/{outgoing_id}/restore", response_model=schemas.OutgoingRecordOut)
def restore_release(
    outgoing_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        record = lifecycle.restore_outgoing(db, outgoing_id, actor=actor_from_user(user), clock=clock)
    return record
