import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from portal.core.security import get_current_user, require_roles
from portal.db import models
from portal.db.session import get_db

router = APIRouter(tags=["Tipos de Solicitacao"])


class RequestTypeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    base_price: Decimal = Field(default=Decimal("0"), ge=0)


class RequestTypeResponse(BaseModel):
    id: str
    name: str
    base_price: Decimal
    active: bool


def _to_response(item: models.RequestType) -> RequestTypeResponse:
    return RequestTypeResponse(id=item.id, name=item.name, base_price=item.base_price, active=item.active)


@router.get("/request-types", response_model=list[RequestTypeResponse])
def list_request_types(
    include_inactive: bool = False,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(models.RequestType)
    if not (include_inactive and current_user.role == models.ROLE_STAFF):
        query = query.filter(models.RequestType.active.is_(True))
    return [_to_response(item) for item in query.order_by(models.RequestType.name).all()]


@router.post("/request-types", response_model=RequestTypeResponse, status_code=status.HTTP_201_CREATED)
def create_request_type(
    payload: RequestTypeCreate,
    current_user: models.User = Depends(require_roles(models.ROLE_STAFF)),
    db: Session = Depends(get_db),
):
    item = models.RequestType(
        id=str(uuid.uuid4()),
        name=payload.name.strip(),
        base_price=payload.base_price,
        active=True,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return _to_response(item)


@router.post("/request-types/{type_id}/deactivate", response_model=RequestTypeResponse)
def deactivate_request_type(
    type_id: str,
    current_user: models.User = Depends(require_roles(models.ROLE_STAFF)),
    db: Session = Depends(get_db),
):
    item = db.query(models.RequestType).filter(models.RequestType.id == type_id).first()
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tipo nao encontrado")
    item.active = False
    db.commit()
    db.refresh(item)
    return _to_response(item)
