import logging
import os
import uuid
from decimal import Decimal

from sqlalchemy.orm import Session

from portal.core.security import get_password_hash
from portal.db import models
from portal.db.session import SessionLocal

logger = logging.getLogger("portal.db")

admin_login = os.getenv("SEED_ADMIN_LOGIN", "admin")
admin_password = os.getenv("SEED_ADMIN_PASSWORD", "admin123")
admin_email = os.getenv("SEED_ADMIN_EMAIL", "admin@portal.local")
SEED_DEMO_CLIENT = os.getenv("SEED_DEMO_CLIENT", "1").strip().lower() in {"1", "true", "yes"}

DEFAULT_REQUEST_TYPES = (
    ("2a Via de Boleto", Decimal("0.00")),
    ("Alteracao Contratual", Decimal("150.00")),
    ("Certidao Negativa", Decimal("50.00")),
)


def seed_request_types(db: Session) -> int:
    existing = {name for (name,) in db.query(models.RequestType.name).all()}
    created = 0
    for name, price in DEFAULT_REQUEST_TYPES:
        if name in existing:
            continue
        db.add(models.RequestType(id=str(uuid.uuid4()), name=name, base_price=price, active=True))
        created += 1
    db.commit()
    return created


def _ensure_user(db: Session, login: str, **fields) -> models.User:
    user = db.query(models.User).filter(models.User.login == login).first()
    if user:
        return user
    user = models.User(id=str(uuid.uuid4()), login=login, **fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def seed_initial_data() -> None:
    db: Session = SessionLocal()
    try:
        created = seed_request_types(db)
        _ensure_user(
            db,
            admin_login,
            name="Administrador",
            email=admin_email,
            password_hash=get_password_hash(admin_password),
            role=models.ROLE_STAFF,
            status="active",
        )
        if SEED_DEMO_CLIENT:
            company = db.query(models.Company).first()
            if not company:
                company = models.Company(id=str(uuid.uuid4()), name="Empresa Demo", cnpj="00000000000191")
                db.add(company)
                db.commit()
                db.refresh(company)
            _ensure_user(
                db,
                "cliente",
                name="Cliente Demo",
                email="cliente@portal.local",
                cpf="00654321090",
                company_id=company.id,
                password_hash=get_password_hash("cliente123"),
                role=models.ROLE_CLIENT,
                status="active",
            )
        logger.info("seed ok request_types_created=%s admin=%s", created, admin_login)
    finally:
        db.close()
