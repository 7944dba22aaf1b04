"""
Lookups the tracking core needs from the user and reference tables.

These are the only places the services read identity, credential and
reference data; tests exercise the services against real rows through them.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from . import auth, models
from .errors import AuthenticationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def resolve_employee(db: Session, employee_id: UUID | None, *, field: str = "employee_id") -> models.User:
    if employee_id is None:
        raise ValidationError("Employee is required", field=field, code="required")
    employee = db.get(models.User, employee_id)
    if employee is None or not employee.is_active:
        raise ValidationError("Employee not found", field=field, code="unknown_employee")
    return employee


def verify_pin(db: Session, employee_id: UUID, pin: str | None, *, field: str = "pin") -> models.User:
    """Return the employee when ``pin`` matches the stored PIN hash."""

    employee = resolve_employee(db, employee_id)
    if not employee.pin_hash:
        raise AuthenticationError("PIN not set for this employee", field=field, code="pin_not_set")
    if not auth.check_pin(pin or "", employee.pin_hash):
        logger.info("PIN mismatch for employee %s", employee_id)
        raise AuthenticationError("Invalid PIN", field=field, code="invalid_pin")
    return employee


def resolve_department(db: Session, department_id: UUID | None) -> models.Department | None:
    if department_id is None:
        return None
    return db.get(models.Department, department_id)


def resolve_location(db: Session, location_id: UUID | None) -> models.Location | None:
    if location_id is None:
        return None
    location = db.get(models.Location, location_id)
    if location is None:
        raise NotFoundError("Location not found", field="location_id", code="location_not_found")
    return location
