import logging
import ssl
import time
from decimal import Decimal
from typing import Optional

import httpx

from portal.core.config import PaymentConfig
from portal.core.errors import PaymentConfigError, PaymentGatewayError
from portal.payments.gateway import ChargeResult, ChargeStatus, Payer, parse_timestamp

logger = logging.getLogger("portal.payments")

BASE_URLS = {
    "production": "https://cdpj.partners.bancointer.com.br",
    "sandbox": "https://cdpj-sandbox.partners.uatinter.co",
}
TOKEN_SCOPE = "cob.write cob.read"


def _extract_error_message(res: httpx.Response) -> str:
    try:
        payload = res.json()
    except ValueError:
        return res.text
    if isinstance(payload, dict):
        return payload.get("detail") or payload.get("title") or payload.get("message") or res.text
    return res.text


class InterPixGateway:
    """Cliente PIX do Banco Inter (mTLS + OAuth client_credentials).

    O par certificado/chave e lido de ``PaymentConfig`` e checado antes de
    qualquer chamada de rede; ausencia gera ``PaymentConfigError``.
    """

    def __init__(self, config: PaymentConfig, transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self.transport = transport
        self.base_url = BASE_URLS.get(config.environment, BASE_URLS["sandbox"])

    def _check_ready(self) -> None:
        if not self.config.credentials_present:
            raise PaymentConfigError("Credenciais PIX ausentes (INTER_CLIENT_ID, INTER_CLIENT_SECRET, PIX_KEY)")
        if not self.config.certificates_present:
            raise PaymentConfigError(
                f"Certificados nao encontrados em {self.config.cert_path.parent} (certificado.crt, chave.key)"
            )

    def _client(self) -> httpx.Client:
        self._check_ready()
        if self.transport is not None:
            return httpx.Client(base_url=self.base_url, timeout=self.config.timeout, transport=self.transport)
        context = ssl.create_default_context()
        context.load_cert_chain(str(self.config.cert_path), str(self.config.key_path))
        return httpx.Client(base_url=self.base_url, timeout=self.config.timeout, verify=context)

    def _send(self, step: str, method: str, url: str, max_attempts: int = 1, **kwargs) -> dict:
        last_exc: Optional[PaymentGatewayError] = None
        with self._client() as client:
            for attempt in range(max_attempts):
                try:
                    res = client.request(method, url, **kwargs)
                except httpx.HTTPError as exc:
                    last_exc = PaymentGatewayError(step, f"erro de rede: {exc}")
                else:
                    if res.status_code < 400:
                        try:
                            return res.json()
                        except ValueError as exc:
                            raise PaymentGatewayError(step, "resposta nao e JSON") from exc
                    last_exc = PaymentGatewayError(
                        step,
                        f"HTTP {res.status_code}: {_extract_error_message(res)}",
                        status_code=res.status_code,
                    )
                    if res.status_code < 500:
                        break
                if attempt + 1 < max_attempts:
                    time.sleep(0.4)
        logger.warning("inter call failed step=%s url=%s error=%s", step, url, last_exc)
        raise last_exc

    def authenticate(self) -> str:
        data = self._send(
            "auth",
            "POST",
            "/oauth/v2/token",
            max_attempts=2,
            data={
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "scope": TOKEN_SCOPE,
                "grant_type": "client_credentials",
            },
        )
        token = data.get("access_token")
        if not token:
            raise PaymentGatewayError("auth", "token ausente na resposta")
        return token

    def create_charge(
        self,
        token: str,
        payer: Payer,
        amount: Decimal,
        description: str,
        expiration_seconds: int,
    ) -> ChargeResult:
        body = {
            "calendario": {"expiracao": expiration_seconds},
            "devedor": {"cpf": payer.cpf, "nome": payer.name},
            "valor": {"original": f"{Decimal(amount):.2f}"},
            "chave": self.config.pix_key,
            "solicitacaoPagador": description[:140],
        }
        data = self._send(
            "charge",
            "POST",
            "/pix/v2/cob",
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )
        txid, payload_code = data.get("txid"), data.get("pixCopiaECola")
        if not txid or not payload_code:
            raise PaymentGatewayError("charge", "resposta sem txid ou pixCopiaECola")
        return ChargeResult(txid=txid, payload_code=payload_code)

    def get_charge_status(self, token: str, txid: str) -> ChargeStatus:
        data = self._send(
            "status",
            "GET",
            f"/pix/v2/cob/{txid}",
            max_attempts=2,
            headers={"Authorization": f"Bearer {token}"},
        )
        payments = data.get("pix") or []
        first = payments[0] if payments and isinstance(payments[0], dict) else {}
        return ChargeStatus(
            txid=data.get("txid") or txid,
            status=data.get("status") or "DESCONHECIDO",
            end_to_end_id=first.get("endToEndId"),
            settled_at=parse_timestamp(first.get("horario")),
        )
