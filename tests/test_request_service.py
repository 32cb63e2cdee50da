from unittest.mock import patch

import pytest

from portal.core.errors import (
    ConcurrencyConflict,
    InvalidTransition,
    PermissionDenied,
    RequestReadOnly,
    ValidationFailed,
)
from portal.db import models
from portal.requests import attachments, chat, service
from portal.requests.documents import SqlDocumentStore
from portal.services.storage import get_storage


class BrokenStore:
    def create(self, draft):
        raise RuntimeError("storage offline")


def _create(db, people, request_types, kind="free", title="Segunda via"):
    return service.create_request(db, people["client"], title, request_types[kind].id, "Detalhes")


def _audit_actions(request):
    return [entry.action for entry in request.audit_entries]


def _stored_files():
    return [path for path in get_storage().base_dir.rglob("*") if path.is_file()]


def test_paid_type_starts_pending_payment(db_session, people, request_types):
    request = _create(db_session, people, request_types, kind="paid")
    assert request.status == "pending_payment"
    assert request.payment_status == "pending"
    assert request.protocol.startswith("REQ-")
    assert _audit_actions(request) == ["Created"]


def test_free_type_starts_requested(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    assert request.status == "requested"
    assert request.payment_status == "not_applicable"
    assert request.version == 1


def test_protocols_are_sequential_and_unique(db_session, people, request_types):
    first = _create(db_session, people, request_types)
    second = _create(db_session, people, request_types)
    assert first.protocol != second.protocol
    assert int(second.protocol.rsplit("-", 1)[1]) == int(first.protocol.rsplit("-", 1)[1]) + 1


def test_create_requires_title_and_type(db_session, people, request_types):
    with pytest.raises(ValidationFailed):
        service.create_request(db_session, people["client"], "  ", request_types["free"].id)
    with pytest.raises(ValidationFailed):
        service.create_request(db_session, people["client"], "Titulo", None)
    with pytest.raises(ValidationFailed):
        service.create_request(db_session, people["client"], "Titulo", "missing-type")


def test_creation_notifies_staff(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    rows = db_session.query(models.Notification).filter(models.Notification.user_id == people["staff"].id).all()
    assert len(rows) == 1
    assert request.protocol in rows[0].title


def test_full_lifecycle_emits_one_document(db_session, people, request_types):
    staff, client = people["staff"], people["client"]
    request = _create(db_session, people, request_types)
    attachments.add_attachment(db_session, request, client, "contrato.pdf", "file:///tmp/contrato.pdf")
    chat.post_message(db_session, request, staff, "Recebido, vamos analisar")

    request = service.open_request(db_session, request, staff)
    assert request.status == "viewed"
    request = service.perform_action(db_session, request, staff, "start")
    assert request.status == "in_progress"
    request = service.perform_action(db_session, request, staff, "send_for_validation")
    assert request.status == "in_validation"
    request = service.perform_action(db_session, request, client, "approve")
    assert request.status == "resolved"

    documents = db_session.query(models.Document).filter(models.Document.request_id == request.id).all()
    assert len(documents) == 1
    document = documents[0]
    assert request.document_id == document.id
    assert document.title == "Resolucao: Segunda via"
    assert document.category == "Documentos Solicitados"
    assert len(document.attachments) == len(attachments.list_attachments(db_session, request)) == 1
    assert len(document.chat) == len(chat.list_messages(db_session, request)) == 1
    assert document.file_url.startswith("file://")
    assert _audit_actions(request)[-1] == "Approved and closed; document generated"


def test_document_snapshot_is_a_copy(db_session, people, request_types):
    staff, client = people["staff"], people["client"]
    request = _create(db_session, people, request_types)
    for action in ("start", "send_for_validation"):
        request = service.perform_action(db_session, request, staff, action)
    request = service.perform_action(db_session, request, client, "approve")
    request = service.perform_action(db_session, request, client, "reopen")
    assert request.status == "requested"
    chat.post_message(db_session, request, client, "Faltou um item")

    document = db_session.get(models.Document, request.document_id)
    assert document.chat == []
    assert len(chat.list_messages(db_session, request)) == 1


def test_document_failure_closes_with_flag_and_retry_emits(db_session, people, request_types):
    staff, client = people["staff"], people["client"]
    request = _create(db_session, people, request_types)
    for action in ("start", "send_for_validation"):
        request = service.perform_action(db_session, request, staff, action)
    request = service.perform_action(db_session, request, client, "approve", document_store=BrokenStore())

    assert request.status == "resolved"
    assert request.document_pending is True
    assert request.document_id is None
    assert _audit_actions(request)[-1] == "Approved and closed; document emission failed, flagged for retry"

    assert service.retry_pending_documents(db_session, document_store=SqlDocumentStore(db_session)) == 1
    db_session.refresh(request)
    assert request.document_pending is False
    assert request.document_id is not None
    assert _audit_actions(request)[-1] == "Resolution document generated on retry"


def test_invalid_transitions_leave_request_untouched(db_session, people, request_types):
    request = _create(db_session, people, request_types, kind="paid")
    before = len(request.audit_entries)
    with pytest.raises(InvalidTransition):
        service.perform_action(db_session, request, people["client"], "approve")
    with pytest.raises(InvalidTransition):
        service.perform_action(db_session, request, people["staff"], "start")
    with pytest.raises(InvalidTransition):
        service.perform_action(db_session, request, people["client"], "confirm_payment")
    db_session.refresh(request)
    assert request.status == "pending_payment"
    assert len(request.audit_entries) == before


def test_client_cannot_start_work(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    with pytest.raises(InvalidTransition) as excinfo:
        service.perform_action(db_session, request, people["client"], "start")
    assert excinfo.value.role == models.ROLE_CLIENT


def test_open_by_staff_is_idempotent(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    request = service.open_request(db_session, request, people["staff"])
    count = len(request.audit_entries)
    request = service.open_request(db_session, request, people["staff"])
    assert request.status == "viewed"
    assert len(request.audit_entries) == count


def test_open_by_client_does_not_mark_viewed(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    request = service.open_request(db_session, request, people["client"])
    assert request.status == "requested"


def test_soft_delete_blocks_writes_until_restore(db_session, people, request_types):
    staff, client = people["staff"], people["client"]
    request = _create(db_session, people, request_types)
    created_at, protocol = request.created_at, request.protocol

    service.soft_delete(db_session, request, staff)
    assert request.deleted_by == staff.name
    assert service.list_requests(db_session, company_id=people["company"].id) == []
    assert service.get_request(db_session, request.id).id == request.id
    assert [row.id for row in service.list_trash(db_session)] == [request.id]

    with pytest.raises(RequestReadOnly):
        attachments.add_attachment(db_session, request, client, "a.pdf", "file:///tmp/a.pdf")
    with pytest.raises(RequestReadOnly):
        chat.post_message(db_session, request, client, "oi")
    with pytest.raises(RequestReadOnly):
        service.perform_action(db_session, request, staff, "start")

    service.restore(db_session, request, staff)
    listed = service.list_requests(db_session, company_id=people["company"].id)
    assert [row.id for row in listed] == [request.id]
    assert listed[0].protocol == protocol
    assert listed[0].created_at == created_at
    attachments.add_attachment(db_session, request, client, "a.pdf", "file:///tmp/a.pdf")
    assert _audit_actions(request)[-3:] == [
        f"Moved to trash by {staff.name}",
        f"Restored by {staff.name}",
        "Attachment added: a.pdf",
    ]


def test_soft_delete_is_staff_only(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    with pytest.raises(PermissionDenied):
        service.soft_delete(db_session, request, people["client"])


def test_remove_attachment_is_staff_only(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    attachment = attachments.add_attachment(
        db_session, request, people["client"], "nota.pdf", "file:///tmp/nota.pdf"
    )
    with pytest.raises(PermissionDenied):
        attachments.remove_attachment(db_session, request, people["client"], attachment.id)
    attachments.remove_attachment(db_session, request, people["staff"], attachment.id)
    assert attachments.list_attachments(db_session, request) == []
    assert _audit_actions(request)[-1] == "Attachment removed: nota.pdf"


def test_upload_attachment_stores_blob(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    attachment = attachments.upload_attachment(
        db_session, request, people["client"], "foto 1.png", b"png-bytes", content_type="image/png"
    )
    assert attachment.size == len(b"png-bytes")
    assert attachment.file_url.startswith("file://")


def test_empty_chat_message_rejected(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    with pytest.raises(ValidationFailed):
        chat.post_message(db_session, request, people["client"], "   ")


def test_audit_grows_by_one_per_mutation(db_session, people, request_types):
    staff, client = people["staff"], people["client"]
    request = _create(db_session, people, request_types)
    operations = [
        lambda r: attachments.add_attachment(db_session, r, client, "x.pdf", "file:///tmp/x.pdf"),
        lambda r: chat.post_message(db_session, r, client, "Mensagem"),
        lambda r: service.perform_action(db_session, r, staff, "start"),
        lambda r: service.soft_delete(db_session, r, staff),
        lambda r: service.restore(db_session, r, staff),
        lambda r: service.perform_action(db_session, r, staff, "send_for_validation"),
        lambda r: service.perform_action(db_session, r, client, "approve"),
        lambda r: service.perform_action(db_session, r, client, "reopen"),
    ]
    for operation in operations:
        before = len(request.audit_entries)
        operation(request)
        db_session.refresh(request)
        assert len(request.audit_entries) == before + 1
    assert [entry.seq for entry in request.audit_entries] == list(range(1, len(request.audit_entries) + 1))


def test_stale_version_is_rejected(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    stale = request.version
    chat.post_message(db_session, request, people["client"], "primeira")
    assert request.version == stale + 1
    with pytest.raises(ConcurrencyConflict):
        service.perform_action(db_session, request, people["staff"], "start", expected_version=stale)


def test_concurrent_writer_detected(session_factory, db_session, people, request_types):
    request = _create(db_session, people, request_types)
    other = session_factory()
    try:
        copy = other.get(models.ServiceRequest, request.id)
        service.perform_action(db_session, request, people["staff"], "start")
        with pytest.raises(ConcurrencyConflict):
            service.soft_delete(other, copy, other.get(models.User, people["staff"].id))
    finally:
        other.close()


def test_listing_filters(db_session, people, request_types):
    first = _create(db_session, people, request_types, title="Certidao negativa federal")
    _create(db_session, people, request_types, title="Alteracao de socio")
    assert [row.id for row in service.list_requests(db_session, search="certidao")] == [first.id]
    assert [row.id for row in service.list_requests(db_session, search=first.protocol)] == [first.id]
    assert len(service.list_requests(db_session, client_id=people["client"].id)) == 2
    assert service.list_requests(db_session, company_id="company-2") == []


def test_to_detail_exposes_allowed_actions(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    detail = service.to_detail(db_session, request, models.ROLE_STAFF).model_dump(mode="json", by_alias=True)
    assert detail["allowedActions"] == ["view", "start"]
    assert detail["clientName"] == "Carlos Cliente"
    assert detail["auditLog"][0]["action"] == "Created"


def test_read_attachment_returns_blob(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    stored = attachments.upload_attachment(db_session, request, people["client"], "a.txt", b"abc")
    attachment, content = attachments.read_attachment(db_session, request, stored.id)
    assert attachment.id == stored.id
    assert content == b"abc"


def test_stale_upload_writes_no_blob(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    with pytest.raises(ConcurrencyConflict):
        attachments.upload_attachment(
            db_session, request, people["client"], "a.txt", b"abc", expected_version=request.version + 1
        )
    assert _stored_files() == []


def test_failed_attachment_commit_removes_blob(db_session, people, request_types):
    request = _create(db_session, people, request_types)
    with patch("portal.requests.attachments.add_attachment", side_effect=ConcurrencyConflict("conflito")):
        with pytest.raises(ConcurrencyConflict):
            attachments.upload_attachment(db_session, request, people["client"], "a.txt", b"abc")
    assert _stored_files() == []


def test_failed_approval_commit_removes_document_blob(db_session, people, request_types):
    staff, client = people["staff"], people["client"]
    request = _create(db_session, people, request_types)
    for action in ("start", "send_for_validation"):
        request = service.perform_action(db_session, request, staff, action)

    with patch("portal.requests.service.commit", side_effect=ConcurrencyConflict("conflito")):
        with pytest.raises(ConcurrencyConflict):
            service.perform_action(db_session, request, client, "approve")
    db_session.rollback()

    assert _stored_files() == []
    assert service.get_request(db_session, request.id).status == "in_validation"
