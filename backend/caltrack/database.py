from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./caltrack.db")

if DATABASE_URL.startswith("sqlite"):
    sqlite_args = {"check_same_thread": False, "timeout": 30}
else:
    sqlite_args = {}

engine = create_engine(DATABASE_URL, connect_args=sqlite_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session):
    """Commit when the block succeeds, roll back on any exception."""

    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def flush_unique(db: Session, conflict: Exception) -> None:
    """Flush pending rows, turning a unique-constraint hit into ``conflict``."""

    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise conflict from exc
