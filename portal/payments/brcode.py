"""Codigo PIX copia-e-cola (BR Code, formato EMV TLV).

``validate_payload_structure`` so prova que o codigo esta bem formado (campos
TLV, campos obrigatorios e CRC16). Nao prova que existe uma cobranca viva no
processador para aquele codigo; para isso use a consulta de status.
"""

from decimal import Decimal
from typing import Optional

GUI_PIX = "br.gov.bcb.pix"
REQUIRED_FIELDS = ("00", "52", "53", "58", "59", "60", "63")
MERCHANT_ACCOUNT_IDS = {f"{value:02d}" for value in range(26, 52)}


def crc16_ccitt(data: str) -> str:
    crc = 0xFFFF
    for byte in data.encode("utf-8"):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def parse_tlv(payload: str) -> list[tuple[str, str]]:
    fields: list[tuple[str, str]] = []
    pos = 0
    while pos < len(payload):
        header = payload[pos : pos + 4]
        if len(header) < 4 or not header.isdigit():
            raise ValueError(f"Campo TLV invalido na posicao {pos}")
        tag, length = header[:2], int(header[2:])
        value = payload[pos + 4 : pos + 4 + length]
        if len(value) != length:
            raise ValueError(f"Campo {tag} truncado")
        fields.append((tag, value))
        pos += 4 + length
    return fields


def _has_pix_account(fields: dict[str, str]) -> bool:
    for tag in MERCHANT_ACCOUNT_IDS.intersection(fields):
        try:
            sub = dict(parse_tlv(fields[tag]))
        except ValueError:
            return False
        if sub.get("00", "").lower() == GUI_PIX and ("01" in sub or "25" in sub):
            return True
    return False


def validate_payload_structure(payload_code: Optional[str]) -> bool:
    code = (payload_code or "").strip()
    if len(code) < 8 or not code.startswith("000201"):
        return False
    try:
        fields = parse_tlv(code)
    except ValueError:
        return False
    tags = dict(fields)
    if any(tag not in tags for tag in REQUIRED_FIELDS):
        return False
    if fields[-1][0] != "63" or len(fields[-1][1]) != 4:
        return False
    if not _has_pix_account(tags):
        return False
    return crc16_ccitt(code[:-4]) == fields[-1][1].upper()


def _tlv(tag: str, value: str) -> str:
    if len(value) > 99:
        raise ValueError(f"Campo {tag} acima de 99 caracteres")
    return f"{tag}{len(value):02d}{value}"


def build_payload(
    pix_key: str,
    amount: Decimal,
    txid: str,
    merchant_name: str = "PORTAL SOLICITACOES",
    merchant_city: str = "SAO PAULO",
) -> str:
    """Monta um BR Code estatico com valor. Usado pelo gateway de exemplo."""
    account = _tlv("00", GUI_PIX) + _tlv("01", pix_key)
    body = "".join(
        [
            _tlv("00", "01"),
            _tlv("26", account),
            _tlv("52", "0000"),
            _tlv("53", "986"),
            _tlv("54", f"{Decimal(amount):.2f}"),
            _tlv("58", "BR"),
            _tlv("59", merchant_name[:25]),
            _tlv("60", merchant_city[:15]),
            _tlv("62", _tlv("05", txid[:25])),
        ]
    )
    body += "6304"
    return body + crc16_ccitt(body)
