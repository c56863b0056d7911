import asyncio

import pytest

from services.deletion.DeletionService import DeletionService
from shared.models.errors import DocumentPermissionError, InvalidInputError, NotFoundError
from tests.conftest import seed_document


@pytest.fixture
def service(helper_config, rag_client, storage_client, document_store):
    return DeletionService(
        helper_config=helper_config,
        rag_client=rag_client,
        storage_client=storage_client,
        document_store=document_store,
    )


def test_delete_removes_vectors_binary_and_record(service, rag_client, storage_client, document_store):
    seed_document(document_store, rag_client, storage_client, "doc-a", "alice", chunks=4)
    seed_document(document_store, rag_client, storage_client, "doc-b", "alice", chunks=2)

    summary = asyncio.run(service.delete_document("doc-a", "alice"))

    assert summary.uuid == "doc-a"
    assert summary.deleted_vectors == 4
    assert summary.vectors_cleanup_ok is True
    assert summary.storage_deleted is True
    assert summary.record_deleted is True
    assert "doc-a" not in document_store.records
    assert rag_client.payloads("doc-a") == []
    assert len(rag_client.payloads("doc-b")) == 2
    assert list(storage_client.objects) == ["pdfs/alice/doc-b"]


def test_delete_by_non_owner_is_refused(service, rag_client, storage_client, document_store):
    seed_document(document_store, rag_client, storage_client, "doc-a", "alice")

    with pytest.raises(DocumentPermissionError):
        asyncio.run(service.delete_document("doc-a", "mallory"))

    assert "doc-a" in document_store.records
    assert len(rag_client.payloads("doc-a")) == 3


def test_delete_unknown_document(service):
    with pytest.raises(NotFoundError):
        asyncio.run(service.delete_document("missing", "alice"))


def test_never_indexed_document_is_still_deleted(service, rag_client, storage_client, document_store):
    seed_document(document_store, rag_client, storage_client, "doc-a", "alice", chunks=0)

    summary = asyncio.run(service.delete_document("doc-a", "alice"))

    assert summary.deleted_vectors == 0
    assert summary.vectors_cleanup_ok is True
    assert summary.record_deleted is True
    assert document_store.records == {}


def test_record_is_deleted_even_when_cleanup_fails(service, rag_client, storage_client, document_store):
    seed_document(document_store, rag_client, storage_client, "doc-a", "alice")
    rag_client.fail_delete = True
    storage_client.fail_delete = True

    summary = asyncio.run(service.delete_document("doc-a", "alice"))

    assert summary.record_deleted is True
    assert summary.vectors_cleanup_ok is False
    assert summary.storage_deleted is False
    assert summary.deleted_vectors == 0
    assert document_store.records == {}


def test_bulk_delete_skips_foreign_and_missing(service, rag_client, storage_client, document_store):
    seed_document(document_store, rag_client, storage_client, "doc-a", "alice", chunks=2)
    seed_document(document_store, rag_client, storage_client, "doc-b", "alice", chunks=3)
    seed_document(document_store, rag_client, storage_client, "doc-c", "bob")

    summary = asyncio.run(service.delete_documents(["doc-a", "doc-b", "doc-a", "doc-c", "missing"], "alice"))

    assert summary.requested == 5
    assert summary.deleted == 2
    assert summary.deleted_vectors == 5
    assert summary.skipped == ["doc-c", "missing"]
    assert [d.uuid for d in summary.documents] == ["doc-a", "doc-b"]
    assert list(document_store.records) == ["doc-c"]
    assert len(rag_client.payloads("doc-c")) == 3


def test_bulk_delete_without_deletable_documents(service, rag_client, storage_client, document_store):
    seed_document(document_store, rag_client, storage_client, "doc-c", "bob")

    with pytest.raises(NotFoundError):
        asyncio.run(service.delete_documents(["doc-c", "missing"], "alice"))


@pytest.mark.parametrize("uuids", [[], [f"doc-{i}" for i in range(101)]])
def test_bulk_delete_size_limits(service, uuids):
    with pytest.raises(InvalidInputError):
        asyncio.run(service.delete_documents(uuids, "alice"))


def test_delete_all_for_user(service, rag_client, storage_client, document_store):
    seed_document(document_store, rag_client, storage_client, "doc-a", "alice", chunks=2)
    seed_document(document_store, rag_client, storage_client, "doc-b", "alice", chunks=2)
    seed_document(document_store, rag_client, storage_client, "doc-c", "bob", chunks=2)

    summary = asyncio.run(service.delete_all_for_user("alice"))

    assert summary.deleted == 2
    assert summary.deleted_vectors == 4
    assert list(document_store.records) == ["doc-c"]
    assert {p["document_uuid"] for p in rag_client.payloads()} == {"doc-c"}
    assert list(storage_client.objects) == ["pdfs/bob/doc-c"]


def test_delete_all_without_documents(service):
    with pytest.raises(NotFoundError):
        asyncio.run(service.delete_all_for_user("alice"))
