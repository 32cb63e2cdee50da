"""Interface do processador de cobrancas PIX e a implementacao de exemplo."""

import uuid
from dataclasses import dataclass
from functools import lru_cache
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol

from portal.core.config import PaymentConfig
from portal.core.errors import PaymentConfigError
from portal.payments.brcode import build_payload

SETTLED_STATUS = "CONCLUIDA"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class Payer:
    name: str
    cpf: str


@dataclass(frozen=True)
class ChargeResult:
    txid: str
    payload_code: str


@dataclass(frozen=True)
class ChargeStatus:
    txid: str
    status: str
    end_to_end_id: Optional[str] = None
    settled_at: Optional[datetime] = None

    @property
    def settled(self) -> bool:
        return self.status == SETTLED_STATUS


class PixGateway(Protocol):
    def authenticate(self) -> str:
        """Obtem um token de acesso usando as credenciais de transporte do processo."""
        ...

    def create_charge(
        self,
        token: str,
        payer: Payer,
        amount: Decimal,
        description: str,
        expiration_seconds: int,
    ) -> ChargeResult:
        ...

    def get_charge_status(self, token: str, txid: str) -> ChargeStatus:
        ...


class ExampleGateway:
    """Gateway local: gera codigos validos sem chamar API externa.

    ``get_gateway`` devolve a mesma instancia por chave PIX, entao uma
    liquidacao marcada com ``mark_paid`` aparece no ``get_charge_status`` seguinte.
    """

    def __init__(self, pix_key: str = "portal@example.com"):
        self.pix_key = pix_key
        self.paid: dict[str, str] = {}

    def authenticate(self) -> str:
        return "example-token"

    def create_charge(
        self,
        token: str,
        payer: Payer,
        amount: Decimal,
        description: str,
        expiration_seconds: int,
    ) -> ChargeResult:
        txid = uuid.uuid4().hex
        return ChargeResult(txid=txid, payload_code=build_payload(self.pix_key, amount, txid))

    def get_charge_status(self, token: str, txid: str) -> ChargeStatus:
        if txid in self.paid:
            return ChargeStatus(txid=txid, status=SETTLED_STATUS, end_to_end_id=self.paid[txid])
        return ChargeStatus(txid=txid, status="ATIVA")

    def mark_paid(self, txid: str, end_to_end_id: Optional[str] = None) -> None:
        self.paid[txid] = end_to_end_id or f"E{uuid.uuid4().hex[:31]}"


@lru_cache(maxsize=None)
def _example_gateway(pix_key: str) -> ExampleGateway:
    return ExampleGateway(pix_key)


def get_gateway(config: PaymentConfig) -> PixGateway:
    if config.gateway == "example":
        return _example_gateway(config.pix_key or "portal@example.com")
    if config.gateway == "inter":
        from portal.payments.inter_client import InterPixGateway

        return InterPixGateway(config)
    raise PaymentConfigError(f"PAYMENT_GATEWAY desconhecido: {config.gateway}")
