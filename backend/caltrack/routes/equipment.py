from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..errors import NotFoundError
from ..pagination import paginate
from ..services import equipment_registry
from .. import models, schemas

router = APIRouter(prefix="/api/equipment", tags=["equipment"])


@router.get("", response_model=schemas.Page[schemas.EquipmentOut])
def list_equipment(
    q: str | None = None,
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return paginate(equipment_registry.search_equipment(db, q=q, status=status), page, per_page)


@router.get("/by-recall/{recall_number}", response_model=schemas.EquipmentOut)
def get_by_recall_number(
    recall_number: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    equipment = equipment_registry.find_by_recall_number(db, recall_number)
    if equipment is None:
        raise NotFoundError(
            f"Equipment with recall number {recall_number} not found",
            field="recall_number",
            code="equipment_not_found",
        )
    return equipment
