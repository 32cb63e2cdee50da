import json
from decimal import Decimal

import httpx
import pytest

from portal.core.config import PaymentConfig
from portal.core.errors import PaymentConfigError, PaymentGatewayError
from portal.payments.gateway import Payer
from portal.payments.inter_client import BASE_URLS, InterPixGateway


@pytest.fixture()
def certs_config(tmp_path):
    (tmp_path / "certificado.crt").write_text("cert")
    (tmp_path / "chave.key").write_text("key")
    return PaymentConfig(
        enable_direct_transfer_charge=True,
        enable_card_gateway=False,
        environment="production",
        gateway="inter",
        client_id="cid",
        client_secret="secret",
        pix_key="chave-pix",
        cert_path=tmp_path / "certificado.crt",
        key_path=tmp_path / "chave.key",
    )


def _gateway(config, handler):
    return InterPixGateway(config, transport=httpx.MockTransport(handler))


def test_authenticate_posts_client_credentials(certs_config):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.content.decode()
        return httpx.Response(200, json={"access_token": "tok", "token_type": "Bearer"})

    assert _gateway(certs_config, handler).authenticate() == "tok"
    assert seen["url"] == f"{BASE_URLS['production']}/oauth/v2/token"
    assert "grant_type=client_credentials" in seen["body"]
    assert "client_id=cid" in seen["body"]


def test_create_charge_sends_cob_body(certs_config):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"txid": "tx1", "pixCopiaECola": "000201..."})

    result = _gateway(certs_config, handler).create_charge(
        "tok", Payer(name="Carlos", cpf="00654321090"), Decimal("150"), "Servico REQ-2026-000001", 3600
    )
    assert result.txid == "tx1"
    assert seen["auth"] == "Bearer tok"
    assert seen["body"] == {
        "calendario": {"expiracao": 3600},
        "devedor": {"cpf": "00654321090", "nome": "Carlos"},
        "valor": {"original": "150.00"},
        "chave": "chave-pix",
        "solicitacaoPagador": "Servico REQ-2026-000001",
    }


def test_auth_failure_names_auth_step(certs_config):
    def handler(request):
        return httpx.Response(401, json={"title": "invalid_client"})

    with pytest.raises(PaymentGatewayError) as excinfo:
        _gateway(certs_config, handler).authenticate()
    assert excinfo.value.step == "auth"
    assert excinfo.value.remote_status == 401
    assert "invalid_client" in excinfo.value.message


def test_network_error_names_charge_step(certs_config):
    def handler(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(PaymentGatewayError) as excinfo:
        _gateway(certs_config, handler).create_charge("tok", Payer("A", "1"), Decimal("1"), "x", 60)
    assert excinfo.value.step == "charge"


def test_charge_response_without_txid_fails(certs_config):
    def handler(request):
        return httpx.Response(200, json={"status": "ATIVA"})

    with pytest.raises(PaymentGatewayError) as excinfo:
        _gateway(certs_config, handler).create_charge("tok", Payer("A", "1"), Decimal("1"), "x", 60)
    assert excinfo.value.step == "charge"


def test_status_reports_settlement(certs_config):
    def handler(request):
        assert request.url.path == "/pix/v2/cob/tx1"
        return httpx.Response(
            200,
            json={
                "txid": "tx1",
                "status": "CONCLUIDA",
                "pix": [{"endToEndId": "E123", "horario": "2026-10-19T12:00:00Z", "valor": "150.00"}],
            },
        )

    status = _gateway(certs_config, handler).get_charge_status("tok", "tx1")
    assert status.settled
    assert status.end_to_end_id == "E123"
    assert status.settled_at.year == 2026


def test_missing_credentials_raise_config_error(certs_config):
    calls = []
    config = PaymentConfig(**{**certs_config.__dict__, "client_secret": ""})
    gateway = _gateway(config, lambda request: calls.append(request))
    with pytest.raises(PaymentConfigError):
        gateway.authenticate()
    assert calls == []
