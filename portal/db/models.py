import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

ROLE_STAFF = "staff"
ROLE_CLIENT = "client"
ROLE_SYSTEM = "system"

ENTITY_REQUEST = "request"
ENTITY_DOCUMENT = "document"


class Company(Base):
    __tablename__ = "companies"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    cnpj = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    users = relationship("User", back_populates="company")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("login", name="uq_user_login"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(String, ForeignKey("companies.id"), nullable=True)
    name = Column(String, nullable=False)
    login = Column(String, nullable=False)
    email = Column(String, nullable=True)
    cpf = Column(String, nullable=True)
    password_hash = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default=ROLE_CLIENT)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    company = relationship("Company", back_populates="users")


class RequestType(Base):
    __tablename__ = "request_types"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


@dataclass(frozen=True)
class PixData:
    txid: str
    payload_code: str
    expires_at: datetime

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) < self.expires_at


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    protocol = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    request_type_id = Column(String, ForeignKey("request_types.id"), nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String, nullable=False)
    payment_status = Column(String, nullable=False)
    txid = Column(String, nullable=True, index=True)
    pix_code = Column(Text, nullable=True)
    pix_expiration = Column(DateTime, nullable=True)
    client_id = Column(String, ForeignKey("users.id"), nullable=False)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False)
    document_id = Column(String, nullable=True)
    document_pending = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(String, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    request_type = relationship("RequestType")
    client = relationship("User", foreign_keys=[client_id])
    company = relationship("Company")
    audit_entries = relationship(
        "RequestAuditEntry",
        back_populates="request",
        order_by="RequestAuditEntry.seq",
        cascade="all, delete-orphan",
    )
    charges = relationship(
        "PixCharge",
        back_populates="request",
        order_by="PixCharge.created_at",
        cascade="all, delete-orphan",
    )

    @property
    def pix(self) -> Optional[PixData]:
        if not (self.txid and self.pix_code and self.pix_expiration):
            return None
        return PixData(txid=self.txid, payload_code=self.pix_code, expires_at=self.pix_expiration)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class RequestAuditEntry(Base):
    __tablename__ = "request_audit_entries"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(String, ForeignKey("service_requests.id"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    action = Column(String, nullable=False)
    actor = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    request = relationship("ServiceRequest", back_populates="audit_entries")


class RequestAttachment(Base):
    __tablename__ = "request_attachments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String, nullable=False, default=ENTITY_REQUEST)
    entity_id = Column(String, nullable=False, index=True)
    seq = Column(Integer, nullable=False, default=0)
    file_name = Column(String, nullable=False)
    file_url = Column(Text, nullable=False)
    content_type = Column(String, nullable=True)
    size = Column(Integer, nullable=True)
    uploaded_by = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String, nullable=False, default=ENTITY_REQUEST)
    entity_id = Column(String, nullable=False, index=True)
    seq = Column(Integer, nullable=False, default=0)
    sender_id = Column(String, ForeignKey("users.id"), nullable=True)
    sender_name = Column(String, nullable=False)
    role = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PixCharge(Base):
    __tablename__ = "pix_charges"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(String, ForeignKey("service_requests.id"), nullable=False, index=True)
    txid = Column(String, nullable=False, unique=True, index=True)
    payload_code = Column(Text, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="pending")
    end_to_end_id = Column(String, nullable=True)
    settled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    request = relationship("ServiceRequest", back_populates="charges")


class Document(Base):
    __tablename__ = "documents"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    category = Column(String, nullable=True)
    reference_date = Column(Date, nullable=True)
    file_url = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="Enviado")
    company_id = Column(String, ForeignKey("companies.id"), nullable=True)
    request_id = Column(String, ForeignKey("service_requests.id"), nullable=True, index=True)
    attachments = Column(JSON, nullable=False, default=list)
    chat = Column(JSON, nullable=False, default=list)
    audit_log = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
