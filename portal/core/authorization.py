from typing import Optional

from fastapi import HTTPException, status

from portal.db import models


def is_staff(user: models.User) -> bool:
    return user.role == models.ROLE_STAFF


def resolve_company_scope(user: models.User, company_id: Optional[str]) -> Optional[str]:
    if is_staff(user):
        return company_id
    if not user.company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Seu perfil nao possui empresa vinculada.",
        )
    if company_id and company_id != user.company_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Empresa fora do escopo")
    return user.company_id


def enforce_request_scope(user: models.User, request: models.ServiceRequest) -> None:
    if is_staff(user):
        return
    if not user.company_id or user.company_id != request.company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solicitacao fora do escopo",
        )
