from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from portal.core.errors import ConcurrencyConflict, RequestReadOnly
from portal.db import models


def check_version(request: models.ServiceRequest, expected_version: Optional[int]) -> None:
    if expected_version is not None and expected_version != request.version:
        raise ConcurrencyConflict(
            f"Solicitacao {request.protocol} foi alterada por outro usuario "
            f"(versao {request.version}, esperada {expected_version})"
        )


def ensure_writable(request: models.ServiceRequest) -> None:
    if request.is_deleted:
        raise RequestReadOnly(f"Solicitacao {request.protocol} esta na lixeira e nao pode ser alterada")


def commit(db: Session) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrencyConflict("Solicitacao foi alterada por outro usuario, recarregue e tente novamente") from exc
