from typing import Optional

from sqlalchemy.orm import Session

from portal.db import models


def get_user(db: Session, user_id: Optional[str]) -> Optional[models.User]:
    if not user_id:
        return None
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_company(db: Session, company_id: Optional[str]) -> Optional[models.Company]:
    if not company_id:
        return None
    return db.query(models.Company).filter(models.Company.id == company_id).first()


def staff_user_ids(db: Session) -> list[str]:
    rows = (
        db.query(models.User.id)
        .filter(models.User.role == models.ROLE_STAFF, models.User.status == "active")
        .all()
    )
    return [row[0] for row in rows]


def display_names(db: Session, request: models.ServiceRequest) -> dict:
    client = request.client or get_user(db, request.client_id)
    company = request.company or get_company(db, request.company_id)
    return {
        "client": client.name if client else None,
        "company": company.name if company else None,
    }


def digits_only(value: Optional[str]) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())
