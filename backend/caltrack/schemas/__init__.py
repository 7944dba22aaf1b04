"""Pydantic schemas consolidating backend API contracts."""

# purpose: aggregate request and response schemas for FastAPI surfaces and services
# status: active

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, EmailStr, ConfigDict, Field
from uuid import UUID

from .tracking import (
    ArchiveResultOut,
    CompleteCalibrationIn,
    ConfirmIncomingIn,
    EmployeeSummary,
    EquipmentOut,
    IncomingRecordOut,
    IncomingRequestIn,
    LocationSummary,
    OutgoingRecordOut,
    PickupIn,
    RecallNumberOut,
    UpdateReleaseIn,
    VerifyPinIn,
    VerifyPinOut,
)
from .reports import (
    FilterOption,
    ReportFilterOptions,
    TrackingExport,
    TrackingReportPage,
    TrackingReportRow,
)

T = TypeVar("T")


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None
    employee_code: Optional[str] = None
    department_id: Optional[UUID] = None


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    full_name: Optional[str]
    employee_code: Optional[str] = None
    role: str
    department_id: Optional[UUID] = None
    plant_id: Optional[UUID] = None
    is_admin: bool = False
    model_config = ConfigDict(from_attributes=True)


class PinUpdate(BaseModel):
    current_password: str
    pin: str = Field(min_length=4, max_length=12, pattern=r"^\d+$")


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    per_page: int
    last_page: int


class AuditLogOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    action: str
    target_type: str | None = None
    target_id: UUID | None = None
    details: Dict[str, Any] = {}
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AuditReportItem(BaseModel):
    action: str
    count: int
