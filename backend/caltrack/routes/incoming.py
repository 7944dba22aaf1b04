"""API routes for the intake side of calibration tracking."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..clock import Clock, get_clock
from ..database import get_db, unit_of_work
from ..pagination import paginate
from ..rbac import actor_from_user, require_role
from ..services import incoming, lifecycle
from .auth import rate_limit

# purpose: expose intake submission, confirmation, archive and listing endpoints
# status: active
# depends_on: backend.caltrack.services.incoming, backend.caltrack.services.lifecycle

router = APIRouter(prefix="/api/tracking", tags=["tracking", "incoming"])

IncomingPage = schemas.Page[schemas.IncomingRecordOut]


@router.post(
    "/incoming/requests",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.IncomingRecordOut,
)
def submit_or_edit_request(
    payload: schemas.IncomingRequestIn,
    response: Response,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        record, created = incoming.submit_or_edit(db, payload, actor=actor_from_user(user), clock=clock)
    if not created:
        response.status_code = status.HTTP_200_OK
    return record


@router.get("/incoming/mine", response_model=IncomingPage)
def list_my_requests(
    q: str | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = incoming.list_for_employee(
        db,
        actor=actor_from_user(user),
        q=q,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
    )
    return paginate(query, page, per_page)


@router.get("/incoming/mine/pending-confirmation", response_model=list[schemas.IncomingRecordOut])
def list_my_pending_confirmation(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return incoming.list_pending_confirmation(db, actor=actor_from_user(user)).all()


@router.get("/incoming/pending", response_model=IncomingPage)
def list_pending_calibration(
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return paginate(incoming.list_pending_calibration(db, actor=actor_from_user(user)), page, per_page)


@router.get("/incoming/overdue", response_model=IncomingPage)
def list_overdue(
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    query = incoming.list_overdue(db, actor=actor_from_user(user), as_of=clock().date())
    return paginate(query, page, per_page)


@router.get("/incoming/archived", response_model=IncomingPage)
def list_archived(
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return paginate(lifecycle.archived_incoming(db, actor=actor_from_user(user)), page, per_page)


@router.get("/incoming/{incoming_id}", response_model=schemas.IncomingRecordOut)
def get_request(
    incoming_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return incoming.view(db, incoming_id, actor=actor_from_user(user))


@router.put("/incoming/{incoming_id}", response_model=schemas.IncomingRecordOut)
def edit_request(
    incoming_id: UUID,
    payload: schemas.IncomingRequestIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        record = incoming.edit(db, incoming_id, payload, actor=actor_from_user(user), clock=clock)
    return record


@router.post("/incoming/{incoming_id}/confirm", response_model=schemas.IncomingRecordOut)
def confirm_request(
    incoming_id: UUID,
    payload: schemas.ConfirmIncomingIn | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        record = incoming.confirm(
            db,
            incoming_id,
            actor=actor_from_user(user),
            received_by_id=payload.received_by_id if payload else None,
            clock=clock,
        )
    return record


@router.delete("/incoming/{incoming_id}", response_model=schemas.ArchiveResultOut)
def archive_request(
    incoming_id: UUID,
    force: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        result = lifecycle.archive(db, incoming_id, actor=actor_from_user(user), force=force, clock=clock)
    if isinstance(result, lifecycle.ForceDeleted):
        return schemas.ArchiveResultOut(
            result=result.result,
            incoming_id=result.incoming_id,
            outgoing_ids=list(result.outgoing_ids),
            equipment_id=result.equipment_id,
        )
    return schemas.ArchiveResultOut(result=result.result, incoming_id=result.incoming_id)


@router.post("/incoming/{incoming_id}/restore", response_model=schemas.IncomingRecordOut)
def restore_request(
    incoming_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    with unit_of_work(db):
        record = lifecycle.restore(db, incoming_id, actor=actor_from_user(user), clock=clock)
    return record


@router.post("/employees/verify-pin", response_model=schemas.VerifyPinOut)
@rate_limit("10/minute")
def verify_employee_pin(
    request: Request,
    payload: schemas.VerifyPinIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    employee = incoming.verify_employee_pin(
        db, actor=actor_from_user(user), employee_id=payload.employee_id, pin=payload.pin
    )
    return schemas.VerifyPinOut(verified=True, employee=schemas.EmployeeSummary.model_validate(employee))


@router.post(
    "/recall-numbers",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.RecallNumberOut,
)
def issue_recall_number(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    actor = actor_from_user(user)
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    return schemas.RecallNumberOut(recall_number=lifecycle.issue_recall_number(db, clock=clock))
