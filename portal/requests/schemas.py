from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RequestCreatePayload(BaseModel):
    title: str = Field(max_length=200)
    type_id: str = Field(alias="typeId")
    description: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("Titulo obrigatorio")
        return cleaned


class ActionPayload(BaseModel):
    expected_version: Optional[int] = Field(default=None, alias="expectedVersion")

    model_config = ConfigDict(populate_by_name=True)


class ChatPayload(ActionPayload):
    text: str


class AttachmentSnapshot(BaseModel):
    id: str
    name: str
    url: str
    uploaded_by: str = Field(serialization_alias="uploadedBy")
    created_at: datetime = Field(serialization_alias="createdAt")


class ChatSnapshot(BaseModel):
    id: str
    sender: str
    role: str
    text: str
    timestamp: datetime


class AuditSnapshot(BaseModel):
    id: str
    action: str
    actor: str
    timestamp: datetime


class DocumentDraft(BaseModel):
    """Conteudo aceito pelo DocumentStore.create."""

    title: str
    category: str
    reference_date: date = Field(serialization_alias="referenceDate")
    company_id: str = Field(serialization_alias="companyId")
    request_id: Optional[str] = None
    attachments: list[AttachmentSnapshot] = Field(default_factory=list)
    chat: list[ChatSnapshot] = Field(default_factory=list)
    audit_log: list[AuditSnapshot] = Field(default_factory=list, serialization_alias="auditLog")


class PixOut(BaseModel):
    txid: str
    payload_code: str = Field(serialization_alias="payloadCode")
    expires_at: datetime = Field(serialization_alias="expiresAt")


class RequestOut(BaseModel):
    id: str
    protocol: str
    title: str
    description: Optional[str] = None
    type_id: Optional[str] = Field(default=None, serialization_alias="typeId")
    type_name: Optional[str] = Field(default=None, serialization_alias="typeName")
    price: Decimal
    status: str
    payment_status: str = Field(serialization_alias="paymentStatus")
    pix: Optional[PixOut] = None
    client_id: str = Field(serialization_alias="clientId")
    client_name: Optional[str] = Field(default=None, serialization_alias="clientName")
    company_id: str = Field(serialization_alias="companyId")
    company_name: Optional[str] = Field(default=None, serialization_alias="companyName")
    document_id: Optional[str] = Field(default=None, serialization_alias="documentId")
    document_pending: bool = Field(default=False, serialization_alias="documentPending")
    deleted_at: Optional[datetime] = Field(default=None, serialization_alias="deletedAt")
    deleted_by: Optional[str] = Field(default=None, serialization_alias="deletedBy")
    version: int
    allowed_actions: list[str] = Field(default_factory=list, serialization_alias="allowedActions")
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")


class RequestDetailOut(RequestOut):
    attachments: list[AttachmentSnapshot] = Field(default_factory=list)
    chat: list[ChatSnapshot] = Field(default_factory=list)
    audit_log: list[AuditSnapshot] = Field(default_factory=list, serialization_alias="auditLog")
