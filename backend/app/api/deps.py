from collections.abc import Generator

from fastapi import Header
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.services.calculator import Calculator
from app.services.field_registry import FieldRegistry, default_registry


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_account_id(x_account_id: str | None = Header(default=None)) -> str:
    if x_account_id is None or not x_account_id.strip():
        return get_settings().default_account_id
    return x_account_id.strip()


def get_registry() -> FieldRegistry:
    return default_registry()


def get_calculator() -> Calculator:
    return Calculator(default_registry())
