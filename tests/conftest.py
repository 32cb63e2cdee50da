import os
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal.db import models
from portal.services.storage import get_storage


@pytest.fixture()
def session_factory(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCAL_STORAGE", "1")
    monkeypatch.setenv("LOCAL_STORAGE_DIR", str(tmp_path / "storage"))
    get_storage.cache_clear()
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    get_storage.cache_clear()
    os.environ.pop("LOCAL_STORAGE", None)
    os.environ.pop("LOCAL_STORAGE_DIR", None)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture()
def people(db_session):
    company = models.Company(id="company-1", name="Empresa Um")
    other_company = models.Company(id="company-2", name="Empresa Dois")
    staff = models.User(
        id="staff-1", name="Ana Equipe", login="ana", password_hash="x", role=models.ROLE_STAFF
    )
    client = models.User(
        id="client-1",
        company_id=company.id,
        name="Carlos Cliente",
        login="carlos",
        cpf="006.543.210-90",
        password_hash="x",
        role=models.ROLE_CLIENT,
    )
    outsider = models.User(
        id="client-2",
        company_id=other_company.id,
        name="Olga Outra",
        login="olga",
        password_hash="x",
        role=models.ROLE_CLIENT,
    )
    db_session.add_all([company, other_company, staff, client, outsider])
    db_session.commit()
    return {"company": company, "staff": staff, "client": client, "outsider": outsider}


@pytest.fixture()
def request_types(db_session):
    free = models.RequestType(id="type-free", name="2a Via de Boleto", base_price=Decimal("0.00"))
    paid = models.RequestType(id="type-paid", name="Alteracao Contratual", base_price=Decimal("150.00"))
    db_session.add_all([free, paid])
    db_session.commit()
    return {"free": free, "paid": paid}
