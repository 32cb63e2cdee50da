import base64
import io
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import qrcode
from sqlalchemy.orm import Session

from portal.core.config import PaymentConfig
from portal.core.errors import PaymentConfigError, PaymentGatewayError, ValidationFailed
from portal.db import models
from portal.payments.gateway import Payer, PixGateway, get_gateway
from portal.payments.settlement import broker
from portal.requests import audit
from portal.requests import service as request_service
from portal.requests.locking import commit, ensure_writable
from portal.requests.state_machine import PaymentStatus, RequestAction, RequestStatus
from portal.services import directory

logger = logging.getLogger("portal.payments")

PROGRESS_CONNECTING = "connecting"
PROGRESS_PAYER = "collecting_payer_data"
PROGRESS_GENERATING = "generating_code"

CHARGE_PENDING = "pending"
CHARGE_SETTLED = "settled"
CHARGE_SUPERSEDED = "superseded"

SANDBOX_PAYER_CPF = "12345678909"

AWAITING_PAYMENT = {RequestStatus.PENDING_PAYMENT.value, RequestStatus.PAYMENT_UNDER_REVIEW.value}


def ensure_enabled(config: PaymentConfig) -> None:
    if not config.enable_direct_transfer_charge:
        raise PaymentConfigError("Cobranca PIX desabilitada (PIX_ENABLED=0)")


def resolve_payer(db: Session, request: models.ServiceRequest, config: PaymentConfig) -> Payer:
    client = request.client or directory.get_user(db, request.client_id)
    name = client.name if client else "Cliente"
    cpf = directory.digits_only(client.cpf if client else None)
    if len(cpf) != 11:
        if config.environment != "sandbox":
            raise ValidationFailed("CPF do cliente ausente ou invalido para emitir a cobranca")
        cpf = SANDBOX_PAYER_CPF
    return Payer(name=name, cpf=cpf)


def generate_charge(
    db: Session,
    request: models.ServiceRequest,
    config: Optional[PaymentConfig] = None,
    gateway: Optional[PixGateway] = None,
    on_progress: Optional[Callable[[str], None]] = None,
    actor_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[models.ServiceRequest, bool]:
    """Retorna ``(request, reused)``. Cobranca ainda valida e devolvida sem chamada remota."""
    config = config or PaymentConfig.from_settings()
    progress = on_progress or (lambda step: None)
    now = now or datetime.utcnow()

    ensure_writable(request)
    if not request.price or request.price <= 0:
        raise ValidationFailed("Solicitacao sem valor a cobrar")
    if request.status not in AWAITING_PAYMENT:
        raise ValidationFailed("Pagamento desta solicitacao ja foi confirmado")
    ensure_enabled(config)

    pix = request.pix
    if pix and pix.is_valid(now):
        return request, True

    gateway = gateway or get_gateway(config)
    progress(PROGRESS_CONNECTING)
    token = gateway.authenticate()
    progress(PROGRESS_PAYER)
    payer = resolve_payer(db, request, config)
    progress(PROGRESS_GENERATING)
    result = gateway.create_charge(
        token,
        payer,
        request.price,
        f"Servico {request.protocol}",
        config.expiration_seconds,
    )
    if db.query(models.PixCharge).filter(models.PixCharge.txid == result.txid).first():
        raise PaymentGatewayError("charge", f"txid {result.txid} ja utilizado")

    expires_at = now + timedelta(seconds=config.expiration_seconds)
    for charge in request.charges:
        if charge.status == CHARGE_PENDING:
            charge.status = CHARGE_SUPERSEDED
    charge = models.PixCharge(
        id=str(uuid.uuid4()),
        request_id=request.id,
        txid=result.txid,
        payload_code=result.payload_code,
        amount=request.price,
        expires_at=expires_at,
        status=CHARGE_PENDING,
        created_at=now,
    )
    request.charges.append(charge)
    request.txid = result.txid
    request.pix_code = result.payload_code
    request.pix_expiration = expires_at
    audit.append_entry(db, request, "PIX charge generated", actor_name or audit.SYSTEM_ACTOR, now=now)
    commit(db)
    db.refresh(request)
    logger.info(
        "pix charge generated protocol=%s txid=%s amount=%s expires_at=%s",
        request.protocol,
        result.txid,
        request.price,
        expires_at.isoformat(),
    )
    return request, False


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def confirm_settlement(
    db: Session,
    txid: str,
    end_to_end_id: Optional[str] = None,
    settled_at: Optional[datetime] = None,
) -> Optional[models.ServiceRequest]:
    """Confirma a liquidacao de um txid. Idempotente; txid desconhecido retorna None."""
    charge = db.query(models.PixCharge).filter(models.PixCharge.txid == txid).first()
    if not charge:
        logger.warning("settlement for unknown txid=%s ignored", txid)
        return None
    request = charge.request
    if charge.status == CHARGE_SETTLED:
        return request

    charge.status = CHARGE_SETTLED
    charge.end_to_end_id = end_to_end_id
    charge.settled_at = _naive_utc(settled_at) or datetime.utcnow()
    if request.payment_status == PaymentStatus.APPROVED.value:
        audit.append_entry(db, request, f"Extra settlement recorded {txid}", audit.SYSTEM_ACTOR)
        commit(db)
        logger.warning("extra settlement recorded protocol=%s txid=%s", request.protocol, txid)
        return request

    request = request_service.apply_action(
        db,
        request,
        RequestAction.CONFIRM_PAYMENT.value,
        models.ROLE_SYSTEM,
        audit.SYSTEM_ACTOR,
    )
    logger.info("settlement confirmed protocol=%s txid=%s e2e=%s", request.protocol, txid, end_to_end_id)
    broker.publish(request.id)
    return request


def confirm_reported_settlement(
    db: Session,
    txid: str,
    config: Optional[PaymentConfig] = None,
    gateway: Optional[PixGateway] = None,
) -> Optional[models.ServiceRequest]:
    """Notificacao sem assinatura: so confirma depois de consultar o processador."""
    if not db.query(models.PixCharge).filter(models.PixCharge.txid == txid).first():
        logger.warning("unsigned settlement for unknown txid=%s ignored", txid)
        return None
    config = config or PaymentConfig.from_settings()
    ensure_enabled(config)
    gateway = gateway or get_gateway(config)
    token = gateway.authenticate()
    status = gateway.get_charge_status(token, txid)
    if not status.settled:
        logger.warning("unsigned settlement not confirmed by processor txid=%s status=%s", txid, status.status)
        return None
    return confirm_settlement(db, status.txid, status.end_to_end_id, status.settled_at)


def flag_payment_review(db: Session, request: models.ServiceRequest) -> models.ServiceRequest:
    request = request_service.apply_action(
        db,
        request,
        RequestAction.FLAG_PAYMENT_REVIEW.value,
        models.ROLE_SYSTEM,
        audit.SYSTEM_ACTOR,
    )
    broker.publish(request.id)
    return request


def sync_settlement(
    db: Session,
    request: models.ServiceRequest,
    config: Optional[PaymentConfig] = None,
    gateway: Optional[PixGateway] = None,
) -> models.ServiceRequest:
    """Consulta o processador quando nao ha webhook configurado."""
    if request.status not in AWAITING_PAYMENT or not request.txid:
        return request
    config = config or PaymentConfig.from_settings()
    ensure_enabled(config)
    gateway = gateway or get_gateway(config)
    token = gateway.authenticate()
    status = gateway.get_charge_status(token, request.txid)
    if not status.settled:
        return request
    return confirm_settlement(db, status.txid, status.end_to_end_id, status.settled_at) or request


def qr_data_url(payload_code: str) -> str:
    image = qrcode.make(payload_code)
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def charge_to_dict(request: models.ServiceRequest, reused: bool, with_qr: bool = True) -> dict:
    pix = request.pix
    if not pix:
        return {"requestId": request.id, "status": request.status, "pix": None}
    return {
        "requestId": request.id,
        "status": request.status,
        "paymentStatus": request.payment_status,
        "reused": reused,
        "pix": {
            "txid": pix.txid,
            "payloadCode": pix.payload_code,
            "expiresAt": pix.expires_at,
            "qrCode": qr_data_url(pix.payload_code) if with_qr else None,
        },
    }
