"""Read-only projection over intake/release pairs for tables and exports."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session, aliased

from .. import models, schemas
from ..clock import Clock, start_of_day, utcnow
from ..errors import ValidationError
from ..pagination import paginate
from ..rbac import Actor, require_role

# purpose: filtered, sorted listing and export rows for the tracking report
# status: active


@dataclass
class ReportFilters:
    q: str | None = None
    status: str | None = None
    outgoing_status: str | None = None
    technician_id: UUID | None = None
    location_id: UUID | None = None
    date_in_from: date | None = None
    date_in_to: date | None = None
    date_out_from: date | None = None
    date_out_to: date | None = None
    due_from: date | None = None
    due_to: date | None = None


_Technician = aliased(models.User, name="technician")
_EmployeeIn = aliased(models.User, name="employee_in")
_EmployeeOut = aliased(models.User, name="employee_out")

_SORT_COLUMNS = {
    "recall_number": models.IncomingRecord.recall_number,
    "description": models.IncomingRecord.description,
    "serial_number": models.IncomingRecord.serial_number,
    "model": models.IncomingRecord.model,
    "manufacturer": models.IncomingRecord.manufacturer,
    "status": models.IncomingRecord.status,
    "date_in": models.IncomingRecord.date_in,
    "due_date": models.IncomingRecord.due_date,
    "date_out": models.OutgoingRecord.date_out,
    "calibration_date": models.OutgoingRecord.calibration_date,
    "calibration_due_date": models.OutgoingRecord.calibration_due_date,
    "cycle_time": models.OutgoingRecord.cycle_time,
    "technician": _Technician.full_name,
    "location": models.Location.name,
}


def _base_query(db: Session):
    return (
        db.query(
            models.IncomingRecord,
            models.OutgoingRecord,
            _Technician.full_name,
            models.Location.name,
            _EmployeeIn.full_name,
            _EmployeeOut.full_name,
        )
        .outerjoin(
            models.OutgoingRecord,
            sa.and_(
                models.OutgoingRecord.incoming_id == models.IncomingRecord.id,
                models.OutgoingRecord.deleted_at.is_(None),
            ),
        )
        .outerjoin(_Technician, _Technician.id == models.IncomingRecord.technician_id)
        .outerjoin(models.Location, models.Location.id == models.IncomingRecord.location_id)
        .outerjoin(_EmployeeIn, _EmployeeIn.id == models.IncomingRecord.employee_in_id)
        .outerjoin(_EmployeeOut, _EmployeeOut.id == models.OutgoingRecord.employee_out_id)
        .filter(models.IncomingRecord.deleted_at.is_(None))
    )


def _day_range(query, column, start: date | None, end: date | None):
    if start:
        query = query.filter(column >= start_of_day(start))
    if end:
        query = query.filter(column < start_of_day(end + timedelta(days=1)))
    return query


def _apply_filters(query, filters: ReportFilters):
    if filters.q:
        like = f"%{filters.q.strip().lower()}%"
        query = query.filter(
            sa.or_(
                sa.func.lower(models.IncomingRecord.recall_number).like(like),
                sa.func.lower(models.IncomingRecord.description).like(like),
                sa.func.lower(models.IncomingRecord.serial_number).like(like),
                sa.func.lower(models.IncomingRecord.model).like(like),
                sa.func.lower(models.IncomingRecord.manufacturer).like(like),
                sa.func.lower(_Technician.full_name).like(like),
                sa.func.lower(models.Location.name).like(like),
            )
        )
    if filters.status:
        query = query.filter(models.IncomingRecord.status == filters.status)
    if filters.outgoing_status:
        query = query.filter(models.OutgoingRecord.status == filters.outgoing_status)
    if filters.technician_id:
        query = query.filter(models.IncomingRecord.technician_id == filters.technician_id)
    if filters.location_id:
        query = query.filter(models.IncomingRecord.location_id == filters.location_id)
    query = _day_range(query, models.IncomingRecord.date_in, filters.date_in_from, filters.date_in_to)
    query = _day_range(query, models.OutgoingRecord.date_out, filters.date_out_from, filters.date_out_to)
    if filters.due_from:
        query = query.filter(models.OutgoingRecord.calibration_due_date >= filters.due_from)
    if filters.due_to:
        query = query.filter(models.OutgoingRecord.calibration_due_date <= filters.due_to)
    return query


def _apply_sort(query, sort_by: str | None, sort_direction: str | None):
    column = _SORT_COLUMNS.get(sort_by or "date_in")
    if column is None:
        raise ValidationError(
            f"Cannot sort by {sort_by}",
            field="sort_by",
            code="invalid_sort",
            context={"allowed": sorted(_SORT_COLUMNS)},
        )
    direction = (sort_direction or "desc").lower()
    if direction not in ("asc", "desc"):
        raise ValidationError("Sort direction must be asc or desc", field="sort_direction", code="invalid_sort")
    ordered = column.asc() if direction == "asc" else column.desc()
    # primary key keeps equal sort values in a stable order across pages
    return query.order_by(ordered, models.IncomingRecord.id.asc())


def _to_row(row) -> schemas.TrackingReportRow:
    incoming, outgoing, technician_name, location_name, employee_in_name, employee_out_name = row
    return schemas.TrackingReportRow(
        incoming_id=incoming.id,
        outgoing_id=outgoing.id if outgoing else None,
        recall_number=incoming.recall_number,
        description=incoming.description,
        serial_number=incoming.serial_number,
        model=incoming.model,
        manufacturer=incoming.manufacturer,
        status=incoming.status,
        outgoing_status=outgoing.status if outgoing else None,
        technician_id=incoming.technician_id,
        technician_name=technician_name,
        location_id=incoming.location_id,
        location_name=location_name,
        employee_in_name=employee_in_name,
        employee_out_name=employee_out_name,
        date_in=incoming.date_in,
        date_out=outgoing.date_out if outgoing else None,
        calibration_date=outgoing.calibration_date if outgoing else None,
        calibration_due_date=outgoing.calibration_due_date if outgoing else None,
        cycle_time=outgoing.cycle_time if outgoing else None,
        queuing_time=outgoing.queuing_time if outgoing else None,
        overdue=outgoing.overdue if outgoing else None,
    )


def report_page(
    db: Session,
    *,
    actor: Actor,
    filters: ReportFilters,
    sort_by: str | None = None,
    sort_direction: str | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> schemas.TrackingReportPage:
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    query = _apply_sort(_apply_filters(_base_query(db), filters), sort_by, sort_direction)
    result = paginate(query, page, per_page)
    result["items"] = [_to_row(row) for row in result["items"]]
    return schemas.TrackingReportPage(**result)


def export(
    db: Session,
    *,
    actor: Actor,
    filters: ReportFilters,
    include_all: bool = False,
    sort_by: str | None = None,
    sort_direction: str | None = None,
    clock: Clock = utcnow,
) -> schemas.TrackingExport:
    """Rows for a bulk export.

    ``include_all`` drops every filter the caller sent; archived intakes stay
    excluded either way.
    """

    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    query = _base_query(db)
    if not include_all:
        query = _apply_filters(query, filters)
    rows = [_to_row(row) for row in _apply_sort(query, sort_by, sort_direction).all()]
    return schemas.TrackingExport(include_all=include_all, generated_at=clock(), total=len(rows), rows=rows)


def filter_options(db: Session, *, actor: Actor) -> schemas.ReportFilterOptions:
    require_role(actor, models.ROLE_ADMIN, models.ROLE_TECHNICIAN)
    technicians = (
        db.query(models.User.id, models.User.full_name, models.User.email)
        .join(models.IncomingRecord, models.IncomingRecord.technician_id == models.User.id)
        .filter(models.IncomingRecord.deleted_at.is_(None))
        .distinct()
        .order_by(models.User.full_name.asc(), models.User.id.asc())
        .all()
    )
    locations = (
        db.query(models.Location.id, models.Location.name)
        .join(models.IncomingRecord, models.IncomingRecord.location_id == models.Location.id)
        .filter(models.IncomingRecord.deleted_at.is_(None))
        .distinct()
        .order_by(models.Location.name.asc(), models.Location.id.asc())
        .all()
    )
    return schemas.ReportFilterOptions(
        technicians=[schemas.FilterOption(id=t.id, name=t.full_name or t.email) for t in technicians],
        locations=[schemas.FilterOption(id=loc.id, name=loc.name) for loc in locations],
        statuses=list(models.INCOMING_STATUSES),
        outgoing_statuses=list(models.OUTGOING_STATUSES),
    )
