"""Calibration tracking request and response contracts."""

# purpose: payloads for intake, release, archive and registry endpoints
# status: active

from __future__ import annotations

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EmployeeSummary(BaseModel):
    id: UUID
    full_name: str | None = None
    email: str
    employee_code: str | None = None
    department_id: UUID | None = None
    model_config = ConfigDict(from_attributes=True)


class LocationSummary(BaseModel):
    id: UUID
    name: str
    department_id: UUID | None = None
    model_config = ConfigDict(from_attributes=True)


class EquipmentOut(BaseModel):
    id: UUID
    recall_number: str | None = None
    serial_number: str
    description: str
    manufacturer: str | None = None
    model: str | None = None
    process_range_start: str | None = None
    process_range_end: str | None = None
    last_calibration_date: date | None = None
    next_calibration_due: date | None = None
    status: str
    custodian_id: UUID | None = None
    location_id: UUID | None = None
    deleted_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


class IncomingRequestIn(BaseModel):
    """Intake form shared by submit and edit.

    ``employee_id`` names the scanned employee when staff submit on someone's
    behalf. ``status`` is accepted so clients can round-trip a record, but
    the services never take it from the payload.
    """

    edit_id: UUID | None = None
    request_type: Literal["new", "routine"] = "new"
    recall_number: str | None = None
    technician_id: UUID | None = None
    received_by_id: UUID | None = None
    employee_id: UUID | None = None
    location_id: UUID | None = None
    serial_number: str | None = None
    description: str | None = None
    model: str | None = None
    manufacturer: str | None = None
    process_range_start: str | None = None
    process_range_end: str | None = None
    due_date: date | None = None
    calibration_date: date | None = None
    expected_due_date: date | None = None
    notes: str | None = None
    status: str | None = None


class IncomingRecordOut(BaseModel):
    id: UUID
    recall_number: str | None = None
    equipment_id: UUID
    technician_id: UUID
    received_by_id: UUID | None = None
    employee_in_id: UUID
    location_id: UUID | None = None
    serial_number: str | None = None
    description: str | None = None
    model: str | None = None
    manufacturer: str | None = None
    due_date: date | None = None
    calibration_date: date | None = None
    expected_due_date: date | None = None
    date_in: datetime
    status: str
    notes: str | None = None
    deleted_at: datetime | None = None
    equipment: EquipmentOut | None = None
    technician: EmployeeSummary | None = None
    received_by: EmployeeSummary | None = None
    employee_in: EmployeeSummary | None = None
    location: LocationSummary | None = None
    model_config = ConfigDict(from_attributes=True)


class ConfirmIncomingIn(BaseModel):
    received_by_id: UUID | None = None


class VerifyPinIn(BaseModel):
    employee_id: UUID
    pin: str | None = None


class VerifyPinOut(BaseModel):
    verified: bool
    employee: EmployeeSummary


class RecallNumberOut(BaseModel):
    recall_number: str


class CompleteCalibrationIn(BaseModel):
    incoming_id: UUID
    confirmer_id: UUID
    pin: str
    recall_number: str | None = None
    calibration_date: date | None = None
    calibration_due_date: date | None = None
    date_out: datetime | None = None
    ct_reqd: int | None = Field(default=None, ge=0)
    commit_etc: int | None = Field(default=None, ge=0)
    actual_etc: int | None = Field(default=None, ge=0)
    process_range_start: str | None = None
    process_range_end: str | None = None


class UpdateReleaseIn(BaseModel):
    calibration_date: date | None = None
    calibration_due_date: date | None = None
    date_out: datetime | None = None
    ct_reqd: int | None = Field(default=None, ge=0)
    commit_etc: int | None = Field(default=None, ge=0)
    actual_etc: int | None = Field(default=None, ge=0)


class PickupIn(BaseModel):
    employee_id: UUID
    pin: str


class OutgoingRecordOut(BaseModel):
    id: UUID
    incoming_id: UUID
    recall_number: str | None = None
    calibration_date: date
    calibration_due_date: date
    date_out: datetime
    released_by_id: UUID | None = None
    employee_out_id: UUID | None = None
    technician_id: UUID | None = None
    cycle_time: int
    queuing_time: int | None = None
    ct_reqd: int | None = None
    commit_etc: int | None = None
    actual_etc: int | None = None
    overdue: bool
    status: str
    picked_up_at: datetime | None = None
    deleted_at: datetime | None = None
    incoming: IncomingRecordOut | None = None
    released_by: EmployeeSummary | None = None
    employee_out: EmployeeSummary | None = None
    model_config = ConfigDict(from_attributes=True)


class ArchiveResultOut(BaseModel):
    result: Literal["archived", "force_deleted"]
    incoming_id: UUID
    outgoing_ids: list[UUID] = Field(default_factory=list)
    equipment_id: UUID | None = None
