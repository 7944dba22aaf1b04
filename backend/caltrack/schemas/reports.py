"""Reporting projection contracts."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class TrackingReportRow(BaseModel):
    incoming_id: UUID
    outgoing_id: UUID | None = None
    recall_number: str | None = None
    description: str | None = None
    serial_number: str | None = None
    model: str | None = None
    manufacturer: str | None = None
    status: str
    outgoing_status: str | None = None
    technician_id: UUID | None = None
    technician_name: str | None = None
    location_id: UUID | None = None
    location_name: str | None = None
    employee_in_name: str | None = None
    employee_out_name: str | None = None
    date_in: datetime
    date_out: datetime | None = None
    calibration_date: date | None = None
    calibration_due_date: date | None = None
    cycle_time: int | None = None
    queuing_time: int | None = None
    overdue: bool | None = None


class TrackingReportPage(BaseModel):
    items: list[TrackingReportRow]
    total: int
    page: int
    per_page: int
    last_page: int


class FilterOption(BaseModel):
    id: UUID
    name: str


class ReportFilterOptions(BaseModel):
    technicians: list[FilterOption] = Field(default_factory=list)
    locations: list[FilterOption] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
    outgoing_statuses: list[str] = Field(default_factory=list)


class TrackingExport(BaseModel):
    include_all: bool
    generated_at: datetime
    total: int
    rows: list[TrackingReportRow]
