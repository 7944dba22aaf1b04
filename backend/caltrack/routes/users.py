from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db, unit_of_work
from .. import models, schemas, auth, audit

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
async def read_profile(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


@router.put("/me/pin", response_model=schemas.UserOut)
async def set_pin(
    update: schemas.PinUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    if not auth.verify_password(update.current_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    with unit_of_work(db):
        current_user.pin_hash = auth.hash_pin(update.pin)
        db.add(current_user)
        audit.log_action(db, current_user.id, "set_pin", "user", current_user.id)
    db.refresh(current_user)
    return current_user
