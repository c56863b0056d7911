import asyncio
from datetime import timedelta

import pytest

from shared.clients.store.sql.DocumentStoreSql import DocumentStoreSql
from shared.models.document import DocumentRecord, IndexingStatus, ListScope, SharedWith, StoredObject, utc_now
from shared.models.errors import InvalidInputError


def make_record(document_uuid: str, owner_id: str = "alice", **overrides) -> DocumentRecord:
    values = {
        "uuid": document_uuid,
        "name": f"{document_uuid}.pdf",
        "original_name": f"{document_uuid}.pdf",
        "uploaded_by": owner_id,
        "storage": StoredObject(url=f"https://files.test/{document_uuid}", public_id=f"pdfs/{owner_id}/{document_uuid}"),
    }
    values.update(overrides)
    return DocumentRecord(**values)


@pytest.fixture
def store(monkeypatch, helper_config):
    monkeypatch.setenv("STORE_SQL_URL", "sqlite://")
    return DocumentStoreSql(helper_config)


def run(store, call):
    async def _run():
        await store.boot()
        try:
            return await call()
        finally:
            await store.close()

    return asyncio.run(_run())


def test_create_assigns_id_and_round_trips_fields(store):
    record = make_record("doc-a", tags=["contract"], shared_with=[SharedWith(user_id="bob")])

    async def scenario():
        created = await store.do_create(record)
        fetched = await store.do_get_by_uuid("doc-a")
        return created, fetched

    created, fetched = run(store, scenario)

    assert created.id is not None
    assert fetched.id == created.id
    assert fetched.storage.public_id == "pdfs/alice/doc-a"
    assert fetched.tags == ["contract"]
    assert fetched.shared_with[0].user_id == "bob"
    assert fetched.indexing_status == IndexingStatus.PENDING


def test_duplicate_uuid_is_rejected(store):
    async def scenario():
        await store.do_create(make_record("doc-a"))
        await store.do_create(make_record("doc-a"))

    with pytest.raises(InvalidInputError):
        run(store, scenario)


def test_update_persists_and_reports_missing_record(store):
    async def scenario():
        created = await store.do_create(make_record("doc-a"))
        updated = created.model_copy(update={
            "indexing_status": IndexingStatus.COMPLETED,
            "is_indexed": True,
            "total_chunks": 4,
            "successful_chunks": 4,
        })
        applied = await store.do_update(updated)
        missing = await store.do_update(make_record("doc-missing"))
        return applied, missing, await store.do_get_by_uuid("doc-a")

    applied, missing, fetched = run(store, scenario)

    assert applied is True
    assert missing is False
    assert fetched.indexing_status == IndexingStatus.COMPLETED
    assert fetched.successful_chunks == 4


def test_delete(store):
    async def scenario():
        await store.do_create(make_record("doc-a"))
        first = await store.do_delete("doc-a")
        second = await store.do_delete("doc-a")
        return first, second, await store.do_get_by_uuid("doc-a")

    assert run(store, scenario) == (True, False, None)


def test_list_filters_by_owner_and_status_newest_first(store):
    now = utc_now()

    async def scenario():
        await store.do_create(make_record("old", created_at=now - timedelta(days=2)))
        await store.do_create(make_record("new", created_at=now))
        await store.do_create(make_record("failed", indexing_status=IndexingStatus.FAILED, error_message="boom"))
        await store.do_create(make_record("foreign", owner_id="bob"))
        return (
            await store.do_list("alice"),
            await store.do_list("alice", IndexingStatus.FAILED),
            await store.do_list(),
        )

    owned, failed, everything = run(store, scenario)

    assert [r.uuid for r in owned][:2] in (["failed", "new"], ["new", "failed"])
    assert [r.uuid for r in owned][-1] == "old"
    assert [r.uuid for r in failed] == ["failed"]
    assert len(everything) == 4


def test_list_scopes_cover_shared_and_public_documents(store):
    async def scenario():
        await store.do_create(make_record("own"))
        await store.do_create(make_record("shared", owner_id="bob", shared_with=[SharedWith(user_id="alice")]))
        await store.do_create(make_record("public", owner_id="carol", is_public=True))
        await store.do_create(make_record("private", owner_id="bob"))
        return {
            scope: sorted(r.uuid for r in await store.do_list("alice", scope=scope))
            for scope in ListScope
        }

    listed = run(store, scenario)

    assert listed[ListScope.OWNED] == ["own"]
    assert listed[ListScope.SHARED] == ["shared"]
    assert listed[ListScope.PUBLIC] == ["public"]
    assert listed[ListScope.ALL] == ["own", "public", "shared"]


def test_list_pages_and_counts(store):
    now = utc_now()

    async def scenario():
        for age in range(5):
            await store.do_create(make_record(f"doc-{age}", created_at=now - timedelta(hours=age)))
        return (
            await store.do_list("alice", limit=2),
            await store.do_list("alice", limit=2, offset=4),
            await store.do_count("alice"),
            await store.do_count("bob"),
        )

    first, last, total, foreign = run(store, scenario)

    assert [r.uuid for r in first] == ["doc-0", "doc-1"]
    assert [r.uuid for r in last] == ["doc-4"]
    assert (total, foreign) == (5, 0)


def test_unsharing_and_deleting_drop_share_rows(store):
    record = make_record("doc-a", shared_with=[SharedWith(user_id="bob"), SharedWith(user_id="dave")])

    async def scenario():
        await store.do_create(record)
        await store.do_update(record.model_copy(update={"shared_with": [SharedWith(user_id="dave")]}))
        after_unshare = (await store.do_count("bob", scope=ListScope.SHARED), await store.do_count("dave", scope=ListScope.SHARED))
        await store.do_delete("doc-a")
        after_delete = await store.do_count("dave", scope=ListScope.SHARED)
        return after_unshare, after_delete

    assert run(store, scenario) == ((0, 1), 0)
