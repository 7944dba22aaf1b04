from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from . import models
from .errors import ForbiddenError

# purpose: explicit caller identity and attribution policy for tracking services
# status: active


@dataclass(frozen=True)
class Actor:
    """Identity handed to every tracking operation instead of ambient session state."""

    employee_id: UUID
    department_id: UUID | None
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == models.ROLE_ADMIN

    @property
    def is_technician(self) -> bool:
        return self.role == models.ROLE_TECHNICIAN

    @property
    def is_staff(self) -> bool:
        return self.role in (models.ROLE_ADMIN, models.ROLE_TECHNICIAN)


@dataclass(frozen=True)
class Attribution:
    technician_id: UUID | None
    received_by_id: UUID | None


def actor_from_user(user: models.User) -> Actor:
    return Actor(employee_id=user.id, department_id=user.department_id, role=user.role)


def resolve_attribution(
    actor: Actor,
    technician_id: UUID | None,
    received_by_id: UUID | None,
) -> Attribution:
    """Decide who an intake is attributed to.

    Technicians always record work under their own id. Self-service
    employees pick a technician but cannot name who received the item;
    that is filled in when staff confirm the request.
    """

    if actor.is_technician:
        return Attribution(technician_id=actor.employee_id, received_by_id=actor.employee_id)
    if not actor.is_staff:
        return Attribution(technician_id=technician_id, received_by_id=None)
    return Attribution(technician_id=technician_id, received_by_id=received_by_id)


def require_role(actor: Actor, *roles: str) -> None:
    if actor.role not in roles:
        raise ForbiddenError(
            f"This action requires one of the roles: {', '.join(roles)}",
            code="role_required",
            context={"role": actor.role},
        )
