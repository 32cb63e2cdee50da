import hmac
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from portal.core.authorization import enforce_request_scope
from portal.core.config import PaymentConfig, settings
from portal.core.errors import PortalError, http_error
from portal.core.security import get_current_user, require_roles
from portal.db import models
from portal.db.session import get_db, get_session_factory
from portal.payments import service
from portal.payments.brcode import validate_payload_structure
from portal.payments.gateway import parse_timestamp
from portal.payments.settlement import OUTCOME_SETTLED, OUTCOME_UNDER_REVIEW, wait_for_settlement
from portal.requests import service as request_service
from portal.requests.state_machine import RequestStatus

logger = logging.getLogger("portal.payments")

router = APIRouter(tags=["Pagamentos"])
webhook_router = APIRouter(tags=["Webhook PIX"])

MAX_WAIT_SECONDS = 55.0


class ValidatePayload(BaseModel):
    payload_code: str = Field(alias="payloadCode")


class PixNotification(BaseModel):
    txid: Optional[str] = None
    valor: Optional[str] = None
    end_to_end_id: Optional[str] = Field(default=None, alias="endToEndId")
    horario: Optional[str] = None


class PixWebhookBody(BaseModel):
    pix: list[PixNotification] = Field(default_factory=list)


def _internal_error():
    logger.exception("Erro interno em pagamentos")
    return JSONResponse(status_code=500, content={"message": "Ocorreu um erro, tente novamente mais tarde"})


def _load(db: Session, user: models.User, request_id: str) -> models.ServiceRequest:
    request = request_service.get_request(db, request_id)
    enforce_request_scope(user, request)
    return request


@router.post("/service-requests/{request_id}/payment/charge")
def generate_charge(
    request_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    steps: list[str] = []
    try:
        request = _load(db, current_user, request_id)
        request, reused = service.generate_charge(
            db,
            request,
            PaymentConfig.from_settings(),
            on_progress=steps.append,
            actor_name=current_user.name,
        )
        return {**service.charge_to_dict(request, reused), "steps": steps}
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.post("/service-requests/{request_id}/payment/sync")
def sync_payment(
    request_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        request = service.sync_settlement(db, request, PaymentConfig.from_settings())
        return {"requestId": request.id, "status": request.status, "paymentStatus": request.payment_status}
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.post("/service-requests/{request_id}/payment/review")
def flag_review(
    request_id: str,
    current_user: models.User = Depends(require_roles(models.ROLE_STAFF)),
    db: Session = Depends(get_db),
):
    try:
        request = request_service.get_request(db, request_id)
        request = service.flag_payment_review(db, request)
        return {"requestId": request.id, "status": request.status, "paymentStatus": request.payment_status}
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.get("/service-requests/{request_id}/payment/wait")
async def wait_payment(
    request_id: str,
    http_request: Request,
    timeout: float = MAX_WAIT_SECONDS,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    try:
        request = _load(db, current_user, request_id)
        expires_at = request.pix_expiration
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc

    def _current_outcome() -> Optional[str]:
        with session_factory() as session:
            current = session.get(models.ServiceRequest, request_id)
            if current is None or current.status not in service.AWAITING_PAYMENT:
                return OUTCOME_SETTLED
            if current.status == RequestStatus.PAYMENT_UNDER_REVIEW.value:
                return OUTCOME_UNDER_REVIEW
            return None

    outcome = await wait_for_settlement(
        request_id,
        _current_outcome,
        expires_at,
        poll_interval=settings.SETTLEMENT_POLL_INTERVAL,
        timeout=max(0.0, min(timeout, MAX_WAIT_SECONDS)),
        is_disconnected=http_request.is_disconnected,
    )
    db.expire_all()
    request = request_service.get_request(db, request_id)
    return {
        "requestId": request.id,
        "outcome": outcome,
        "status": request.status,
        "paymentStatus": request.payment_status,
    }


@router.post("/payments/validate")
def validate_code(payload: ValidatePayload, current_user: models.User = Depends(get_current_user)):
    return {"valid": validate_payload_structure(payload.payload_code)}


@webhook_router.post("/webhook/pix")
def pix_webhook(
    body: PixWebhookBody,
    x_webhook_secret: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    secret = settings.PIX_WEBHOOK_SECRET
    if secret and not hmac.compare_digest(x_webhook_secret or "", secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Assinatura do webhook invalida")
    signed = bool(secret)
    config = None if signed else PaymentConfig.from_settings()
    confirmed, ignored = 0, 0
    for item in body.pix:
        if not item.txid:
            ignored += 1
            continue
        try:
            if signed:
                request = service.confirm_settlement(
                    db, item.txid, item.end_to_end_id, parse_timestamp(item.horario)
                )
            else:
                request = service.confirm_reported_settlement(db, item.txid, config=config)
        except PortalError as exc:
            db.rollback()
            logger.warning("webhook settlement rejected txid=%s error=%s", item.txid, exc.message)
            ignored += 1
            continue
        if request is None:
            ignored += 1
        else:
            confirmed += 1
    logger.info("pix webhook processed confirmed=%s ignored=%s", confirmed, ignored)
    return {"status": "ok", "confirmed": confirmed, "ignored": ignored}

