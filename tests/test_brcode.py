from decimal import Decimal

import pytest

from portal.payments import brcode


def _payload():
    return brcode.build_payload("financeiro@portal.local", Decimal("150"), "abc123TXID")


def test_crc16_known_vector():
    assert brcode.crc16_ccitt("123456789") == "29B1"


def test_built_payload_is_valid():
    code = _payload()
    assert code.startswith("000201")
    assert "5406150.00" in code
    assert brcode.validate_payload_structure(code)


def test_tampered_payload_fails_checksum():
    code = _payload()
    tampered = code.replace("150.00", "990.00")
    assert not brcode.validate_payload_structure(tampered)


@pytest.mark.parametrize("value", [None, "", "hello", "000201", "0002010102"])
def test_garbage_is_rejected(value):
    assert not brcode.validate_payload_structure(value)


def test_payload_without_pix_account_is_rejected():
    body = "000201" + "52040000" + "5303986" + "5802BR" + "5905LOJAX" + "6005CIDAD" + "6304"
    assert not brcode.validate_payload_structure(body + brcode.crc16_ccitt(body))


def test_parse_tlv_rejects_truncated_field():
    with pytest.raises(ValueError):
        brcode.parse_tlv("0005ab")
