import logging
import os

from fastapi import APIRouter, Depends

from portal.core import config
from portal.core.security import require_roles
from portal.db import models

router = APIRouter(tags=["Doctor"])
logger = logging.getLogger("portal.doctor")


@router.get("/doctor/payments")
def doctor_payments(current_user: models.User = Depends(require_roles(models.ROLE_STAFF))):
    payment = config.PaymentConfig.from_settings()
    credentials_ok = payment.credentials_present
    certificates_ok = payment.certificates_present
    overall = payment.enable_direct_transfer_charge and (
        payment.gateway == "example" or (credentials_ok and certificates_ok)
    )
    if payment.enable_direct_transfer_charge and not overall:
        logger.warning(
            "doctor/payments incomplete credentials=%s certificates=%s", credentials_ok, certificates_ok
        )
    return {
        "status": "OK" if overall else "WARN",
        "pix_enabled": payment.enable_direct_transfer_charge,
        "card_gateway_enabled": payment.enable_card_gateway,
        "gateway": payment.gateway,
        "environment": payment.environment,
        "credentials": "OK" if credentials_ok else "ERROR",
        "certificates": "OK" if certificates_ok else "ERROR",
        "webhook_secret": "OK" if config.settings.PIX_WEBHOOK_SECRET else "WARN",
    }


@router.get("/doctor")
def doctor():
    settings = config.settings
    gcs_ok = bool(os.getenv("GCS_BUCKET")) and os.getenv("LOCAL_STORAGE", "0") != "1"
    return {
        "status": "OK",
        "storage": "GCS" if gcs_ok else "LOCAL",
        "cors": "OK" if settings.BACKEND_CORS_ORIGINS else "ERROR",
    }
