import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from .clock import utcnow
from .database import Base

ROLE_ADMIN = "admin"
ROLE_TECHNICIAN = "technician"
ROLE_EMPLOYEE = "employee"

EQUIPMENT_STATUSES = ("active", "inactive", "maintenance", "calibration", "retired")

INCOMING_FOR_CONFIRMATION = "for_confirmation"
INCOMING_PENDING_CALIBRATION = "pending_calibration"
INCOMING_COMPLETED = "completed"
INCOMING_STATUSES = (
    INCOMING_FOR_CONFIRMATION,
    INCOMING_PENDING_CALIBRATION,
    INCOMING_COMPLETED,
)

OUTGOING_FOR_PICKUP = "for_pickup"
OUTGOING_COMPLETED = "completed"
OUTGOING_STATUSES = (OUTGOING_FOR_PICKUP, OUTGOING_COMPLETED)


class Plant(Base):
    __tablename__ = "plants"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Department(Base):
    __tablename__ = "departments"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, unique=True, nullable=False)
    plant_id = Column(UUID(as_uuid=True), ForeignKey("plants.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    plant = relationship("Plant")


class Location(Base):
    __tablename__ = "locations"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    department_id = Column(UUID(as_uuid=True), ForeignKey("departments.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    department = relationship("Department")


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    employee_code = Column(String, unique=True, nullable=True)
    hashed_password = Column(String, nullable=False)
    pin_hash = Column(String, nullable=True)
    full_name = Column(String)
    role = Column(String, default=ROLE_EMPLOYEE, nullable=False)
    department_id = Column(UUID(as_uuid=True), ForeignKey("departments.id"), nullable=True)
    plant_id = Column(UUID(as_uuid=True), ForeignKey("plants.id"), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    department = relationship("Department")
    plant = relationship("Plant")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Equipment(Base):
    __tablename__ = "equipment"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recall_number = Column(String, unique=True, nullable=True)
    serial_number = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    manufacturer = Column(String)
    model = Column(String)
    process_range_start = Column(String)
    process_range_end = Column(String)
    last_calibration_date = Column(Date)
    next_calibration_due = Column(Date)
    status = Column(String, default="active", nullable=False)
    custodian_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    plant_id = Column(UUID(as_uuid=True), ForeignKey("plants.id"), nullable=True)
    department_id = Column(UUID(as_uuid=True), ForeignKey("departments.id"), nullable=True)
    location_id = Column(UUID(as_uuid=True), ForeignKey("locations.id"), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    # optimistic concurrency for the fill-if-absent merge of concurrent intakes
    __mapper_args__ = {"version_id_col": version}

    custodian = relationship("User")
    location = relationship("Location")
    incoming_records = relationship("IncomingRecord", back_populates="equipment")


class IncomingRecord(Base):
    """
    Intake of a physical asset for calibration.

    ``serial_number``, ``description``, ``model`` and ``manufacturer`` are a
    snapshot taken at intake; the linked ``Equipment`` row carries the
    current values and may drift afterwards.
    """

    __tablename__ = "incoming_records"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recall_number = Column(String, nullable=True, index=True)
    equipment_id = Column(UUID(as_uuid=True), ForeignKey("equipment.id"), nullable=False)
    technician_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    received_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    employee_in_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    location_id = Column(UUID(as_uuid=True), ForeignKey("locations.id"), nullable=True)
    serial_number = Column(String)
    description = Column(Text)
    model = Column(String)
    manufacturer = Column(String)
    due_date = Column(Date)
    calibration_date = Column(Date)
    expected_due_date = Column(Date)
    date_in = Column(DateTime, nullable=False)
    status = Column(String, default=INCOMING_FOR_CONFIRMATION, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    equipment = relationship("Equipment", back_populates="incoming_records")
    technician = relationship("User", foreign_keys=[technician_id])
    received_by = relationship("User", foreign_keys=[received_by_id])
    employee_in = relationship("User", foreign_keys=[employee_in_id])
    location = relationship("Location")
    outgoing = relationship("OutgoingRecord", back_populates="incoming", uselist=False)


class OutgoingRecord(Base):
    __tablename__ = "outgoing_records"
    __table_args__ = (
        sa.UniqueConstraint("incoming_id", name="uq_outgoing_records_incoming_id"),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    incoming_id = Column(UUID(as_uuid=True), ForeignKey("incoming_records.id"), nullable=False)
    recall_number = Column(String, nullable=True, index=True)
    calibration_date = Column(Date, nullable=False)
    calibration_due_date = Column(Date, nullable=False)
    date_out = Column(DateTime, nullable=False)
    released_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    employee_out_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    technician_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    cycle_time = Column(Integer, nullable=False, default=0)
    queuing_time = Column(Integer, nullable=True)
    ct_reqd = Column(Integer, nullable=True)
    commit_etc = Column(Integer, nullable=True)
    actual_etc = Column(Integer, nullable=True)
    overdue = Column(Boolean, default=False, nullable=False)
    status = Column(String, default=OUTGOING_FOR_PICKUP, nullable=False)
    picked_up_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    incoming = relationship("IncomingRecord", back_populates="outgoing")
    released_by = relationship("User", foreign_keys=[released_by_id])
    employee_out = relationship("User", foreign_keys=[employee_out_id])
    technician = relationship("User", foreign_keys=[technician_id])


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)
