"""Emissao do documento de resolucao.

Ao aprovar uma solicitacao, o cliente recebe um documento somente leitura com
uma copia dos anexos, do chat e do historico daquele momento. As listas sao
copiadas (nao referenciadas) porque a solicitacao pode ser reaberta e seguir
recebendo anexos e mensagens.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Protocol

from jinja2 import Template
from sqlalchemy.orm import Session

from portal.core.errors import NotFoundError
from portal.db import models
from portal.requests import attachments as attachment_store
from portal.requests import audit
from portal.requests import chat as chat_thread
from portal.requests.schemas import (
    AttachmentSnapshot,
    AuditSnapshot,
    ChatSnapshot,
    DocumentDraft,
)
from portal.services.storage import get_storage, safe_delete, safe_signed_url

logger = logging.getLogger("portal.requests")

DOCUMENT_CATEGORY = "Documentos Solicitados"


class DocumentEmissionError(Exception):
    pass


class DocumentStore(Protocol):
    def create(self, draft: DocumentDraft) -> str:
        ...

    def discard(self, document_id: str) -> None:
        """Desfaz um ``create`` cujo commit falhou."""
        ...


_TEMPLATE = Template(
    """
<!doctype html>
<html lang="pt-br">
<head>
  <meta charset="utf-8" />
  <style>
    body { font-family: "Segoe UI", Arial, sans-serif; color: #0f172a; margin: 24px; }
    h1 { font-size: 20px; margin-bottom: 4px; }
    h2 { font-size: 15px; margin-top: 20px; border-bottom: 1px solid #e2e8f0; }
    .muted { color: #475569; font-size: 12px; }
    li { margin-bottom: 4px; }
  </style>
</head>
<body>
  <h1>{{ title }}</h1>
  <div class="muted">Protocolo {{ protocol }} &middot; Referencia {{ reference_date }}</div>

  <h2>Anexos</h2>
  {% if attachments %}
    <ul>
    {% for item in attachments %}
      <li>{{ item.name }} <span class="muted">({{ item.uploaded_by }})</span></li>
    {% endfor %}
    </ul>
  {% else %}
    <div class="muted">Nenhum anexo.</div>
  {% endif %}

  <h2>Conversa</h2>
  {% if chat %}
    <ul>
    {% for item in chat %}
      <li><strong>{{ item.sender }}</strong>: {{ item.text }} <span class="muted">{{ item.timestamp.strftime("%d/%m/%Y %H:%M") }}</span></li>
    {% endfor %}
    </ul>
  {% else %}
    <div class="muted">Sem mensagens.</div>
  {% endif %}

  <h2>Historico</h2>
  <ul>
  {% for item in audit_log %}
    <li>{{ item.timestamp.strftime("%d/%m/%Y %H:%M") }} - {{ item.action }} <span class="muted">({{ item.actor }})</span></li>
  {% endfor %}
  </ul>
</body>
</html>
"""
)


def render_document_html(draft: DocumentDraft, protocol: str) -> str:
    return _TEMPLATE.render(
        title=draft.title,
        protocol=protocol,
        reference_date=draft.reference_date.strftime("%d/%m/%Y"),
        attachments=draft.attachments,
        chat=draft.chat,
        audit_log=draft.audit_log,
    )


class SqlDocumentStore:
    """Grava o documento na tabela ``documents`` e o HTML no blob store."""

    def __init__(self, db: Session):
        self.db = db
        self._written: dict[str, str] = {}

    def create(self, draft: DocumentDraft) -> str:
        document_id = str(uuid.uuid4())
        request = self.db.get(models.ServiceRequest, draft.request_id) if draft.request_id else None
        protocol = request.protocol if request else "-"
        html = render_document_html(draft, protocol)
        try:
            file_url = get_storage().put(
                html.encode("utf-8"),
                f"documents/{document_id}/resolucao.html",
                content_type="text/html",
            )
        except Exception as exc:
            raise DocumentEmissionError(f"Falha ao gravar documento: {exc}") from exc
        self._written[document_id] = file_url
        document = models.Document(
            id=document_id,
            title=draft.title,
            category=draft.category,
            reference_date=draft.reference_date,
            file_url=file_url,
            company_id=draft.company_id,
            request_id=draft.request_id,
            attachments=[item.model_dump(mode="json", by_alias=True) for item in draft.attachments],
            chat=[item.model_dump(mode="json") for item in draft.chat],
            audit_log=[item.model_dump(mode="json") for item in draft.audit_log],
        )
        self.db.add(document)
        return document_id

    def discard(self, document_id: str) -> None:
        safe_delete(self._written.pop(document_id, None))


def build_draft(db: Session, request: models.ServiceRequest, now: Optional[datetime] = None) -> DocumentDraft:
    now = now or datetime.utcnow()
    return DocumentDraft(
        title=f"Resolucao: {request.title}",
        category=DOCUMENT_CATEGORY,
        reference_date=now.date(),
        company_id=request.company_id,
        request_id=request.id,
        attachments=[
            AttachmentSnapshot(
                id=item.id,
                name=item.file_name,
                url=item.file_url,
                uploaded_by=item.uploaded_by,
                created_at=item.created_at,
            )
            for item in attachment_store.list_attachments(db, request)
        ],
        chat=[ChatSnapshot(**chat_thread.message_to_dict(item)) for item in chat_thread.list_messages(db, request)],
        audit_log=[AuditSnapshot(**audit.entry_to_dict(item)) for item in request.audit_entries],
    )


def emit_resolution_document(
    db: Session,
    request: models.ServiceRequest,
    store: Optional[DocumentStore] = None,
    now: Optional[datetime] = None,
) -> str:
    store = store or SqlDocumentStore(db)
    draft = build_draft(db, request, now=now)
    document_id = store.create(draft)
    logger.info(
        "resolution document emitted request=%s document=%s attachments=%s chat=%s",
        request.protocol,
        document_id,
        len(draft.attachments),
        len(draft.chat),
    )
    return document_id


def get_document(db: Session, request: models.ServiceRequest) -> models.Document:
    document = db.get(models.Document, request.document_id) if request.document_id else None
    if not document:
        raise NotFoundError("Documento de resolucao nao emitido")
    return document


def document_to_dict(document: models.Document) -> dict:
    return {
        "id": document.id,
        "title": document.title,
        "category": document.category,
        "referenceDate": document.reference_date.isoformat() if document.reference_date else None,
        "url": safe_signed_url(document.file_url),
        "attachments": document.attachments,
        "chat": document.chat,
        "auditLog": document.audit_log,
    }
