"""API routes for the tracking report table and its export."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..clock import Clock, get_clock
from ..database import get_db
from ..rbac import actor_from_user
from ..services import reporting

# purpose: expose the joined intake/release projection for tables and exports
# status: active

router = APIRouter(prefix="/api/reports", tags=["reports"])


def report_filters(
    q: str | None = None,
    status: str | None = None,
    outgoing_status: str | None = None,
    technician_id: UUID | None = None,
    location_id: UUID | None = None,
    date_in_from: date | None = None,
    date_in_to: date | None = None,
    date_out_from: date | None = None,
    date_out_to: date | None = None,
    due_from: date | None = None,
    due_to: date | None = None,
) -> reporting.ReportFilters:
    return reporting.ReportFilters(
        q=q,
        status=status,
        outgoing_status=outgoing_status,
        technician_id=technician_id,
        location_id=location_id,
        date_in_from=date_in_from,
        date_in_to=date_in_to,
        date_out_from=date_out_from,
        date_out_to=date_out_to,
        due_from=due_from,
        due_to=due_to,
    )


@router.get("/tracking", response_model=schemas.TrackingReportPage)
def tracking_report(
    filters: reporting.ReportFilters = Depends(report_filters),
    sort_by: str | None = None,
    sort_direction: str | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return reporting.report_page(
        db,
        actor=actor_from_user(user),
        filters=filters,
        sort_by=sort_by,
        sort_direction=sort_direction,
        page=page,
        per_page=per_page,
    )


@router.get("/tracking/export", response_model=schemas.TrackingExport)
def export_tracking_report(
    include_all: bool = False,
    filters: reporting.ReportFilters = Depends(report_filters),
    sort_by: str | None = None,
    sort_direction: str | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    return reporting.export(
        db,
        actor=actor_from_user(user),
        filters=filters,
        include_all=include_all,
        sort_by=sort_by,
        sort_direction=sort_direction,
        clock=clock,
    )


@router.get("/tracking/filter-options", response_model=schemas.ReportFilterOptions)
def tracking_filter_options(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return reporting.filter_options(db, actor=actor_from_user(user))
