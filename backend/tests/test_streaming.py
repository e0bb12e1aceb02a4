"""Generation runs end to end: admission, forwarding, commit and cancellation."""

from __future__ import annotations

import asyncio
import json

import pytest

from artifact_studio.core.database import SessionLocal
from artifact_studio.modules.artifacts.deltas import ArtifactKind, Delta
from artifact_studio.modules.artifacts.exceptions import (
    DocumentBusyError,
    DocumentNotFoundError,
    GenerationCancelled,
)
from artifact_studio.modules.artifacts.registry import build_default_registry
from artifact_studio.modules.artifacts.service import ArtifactService
from artifact_studio.modules.artifacts.store import VersionStore
from artifact_studio.modules.artifacts.streaming import QueueSink, RunState

USER = "user-1"


def _service(source, store, settings) -> ArtifactService:
    return ArtifactService(build_default_registry(source, settings), store, settings)


def _seed(store, content: str = "v0", kind: ArtifactKind = ArtifactKind.TEXT):
    document, _ = store.create_document(
        document_id=f"doc-{kind.value}-{content}", user_id=USER, kind=kind, title="Seed", content=content
    )
    return document


async def _drain(handle):
    deltas = [delta async for delta in handle.deltas()]
    return deltas, await handle.outcome()


class _FailingStore(VersionStore):
    """Reads work; every write fails."""

    def create_document(self, **kwargs):
        raise RuntimeError("disk full")

    def append_version(self, document_id, content):
        raise RuntimeError("disk full")


def test_text_create_streams_in_order_and_commits(store, settings, scripted_source) -> None:
    source = scripted_source(texts=[["Gravity ", "pulls ", "objects."]])

    async def scenario():
        service = _service(source, store, settings)
        handle = await service.create(user_id=USER, kind=ArtifactKind.TEXT, title="Explain gravity")
        return handle, *await _drain(handle)

    handle, deltas, outcome = asyncio.run(scenario())

    assert [d.content for d in deltas] == ["Gravity ", "pulls ", "objects."]
    assert outcome.state is RunState.DONE
    assert outcome.version.index == 0
    assert outcome.version.content == "Gravity pulls objects."
    document = store.get_document(handle.document_id, user_id=USER)
    assert document.title == "Explain gravity"
    assert document.kind is ArtifactKind.TEXT
    assert [v.content for v in store.list_versions(handle.document_id)] == ["Gravity pulls objects."]


def test_slide_create_commits_last_object(store, settings, scripted_source) -> None:
    second = {"title": "T", "slides": [{"title": "S1", "content": ["a"]}]}
    source = scripted_source(objects=[[{"title": "T"}, second]])

    async def scenario():
        service = _service(source, store, settings)
        handle = await service.create(user_id=USER, kind=ArtifactKind.SLIDE, title="Deck")
        return await _drain(handle)

    deltas, outcome = asyncio.run(scenario())

    assert [json.loads(d.content) for d in deltas[:2]] == [{"title": "T"}, second]
    assert outcome.version.content == deltas[1].content


def test_model_is_threaded_through(store, settings, scripted_source) -> None:
    source = scripted_source(texts=[["a "], ["b "]])

    async def scenario():
        service = _service(source, store, settings)
        await _drain(await service.create(user_id=USER, kind=ArtifactKind.TEXT, title="t"))
        await _drain(await service.create(user_id=USER, kind=ArtifactKind.TEXT, title="t", model="other-model"))

    asyncio.run(scenario())

    assert source.calls[0]["model"] == settings.ARTIFACT_DEFAULT_MODEL
    assert source.calls[1]["model"] == "other-model"


def test_closing_transport_commits_nothing(store, settings, scripted_source) -> None:
    document = _seed(store)

    async def scenario():
        gate = asyncio.Event()
        source = scripted_source(texts=[["More ", "words ", "here "]], gate=gate, gate_at=1)
        service = _service(source, store, settings)
        handle = await service.update(user_id=USER, document_id=document.id, description="expand")
        deltas = handle.deltas()
        first = await anext(deltas)
        handle.cancel()
        gate.set()
        outcome = await handle.outcome()
        await deltas.aclose()
        return first, outcome, source, service

    first, outcome, source, service = asyncio.run(scenario())

    assert first == Delta("text-delta", "More ")
    assert outcome.state is RunState.CANCELLED
    assert outcome.version is None
    assert len(store.list_versions(document.id)) == 1
    assert source.closed_streams == 1
    assert not service.is_busy(document.id)


def test_cancelled_create_leaves_no_document(store, settings, scripted_source) -> None:
    async def scenario():
        gate = asyncio.Event()
        source = scripted_source(texts=[["Draft ", "text "]], gate=gate, gate_at=1)
        service = _service(source, store, settings)
        handle = await service.create(user_id=USER, kind=ArtifactKind.TEXT, title="Draft")
        await anext(handle.deltas())
        handle.cancel()
        gate.set()
        return handle.document_id, await handle.outcome()

    document_id, outcome = asyncio.run(scenario())

    assert outcome.state is RunState.CANCELLED
    assert store.get_document(document_id) is None


def test_second_run_on_busy_document_is_rejected(store, settings, scripted_source) -> None:
    document = _seed(store)

    async def scenario():
        gate = asyncio.Event()
        source = scripted_source(texts=[["one ", "two "], ["three "]], gate=gate, gate_at=1)
        service = _service(source, store, settings)
        first = await service.update(user_id=USER, document_id=document.id, description="first")
        assert service.is_busy(document.id)
        with pytest.raises(DocumentBusyError):
            await service.update(user_id=USER, document_id=document.id, description="second")
        with pytest.raises(DocumentBusyError):
            await service.save_version(user_id=USER, document_id=document.id, content="manual")
        gate.set()
        _, outcome = await _drain(first)
        return outcome, service

    outcome, service = asyncio.run(scenario())

    assert outcome.state is RunState.DONE
    assert [v.content for v in store.list_versions(document.id)] == ["v0", "one two "]
    assert not service.is_busy(document.id)


def test_unrelated_documents_run_concurrently(store, settings, scripted_source) -> None:
    first_doc = _seed(store, "first")
    second_doc = _seed(store, "second")
    source = scripted_source(texts=[["alpha "], ["beta "]])

    async def scenario():
        service = _service(source, store, settings)
        first = await service.update(user_id=USER, document_id=first_doc.id, description="a")
        second = await service.update(user_id=USER, document_id=second_doc.id, description="b")
        return await asyncio.gather(_drain(first), _drain(second))

    results = asyncio.run(scenario())

    assert [outcome.state for _, outcome in results] == [RunState.DONE, RunState.DONE]
    assert len(store.list_versions(first_doc.id)) == 2
    assert len(store.list_versions(second_doc.id)) == 2


def test_successive_runs_append_one_version_each(store, settings, scripted_source) -> None:
    document = _seed(store)
    source = scripted_source(texts=[["first "], ["second "]])

    async def scenario():
        service = _service(source, store, settings)
        for description in ("one", "two"):
            await _drain(await service.update(user_id=USER, document_id=document.id, description=description))

    asyncio.run(scenario())

    versions = store.list_versions(document.id)
    assert [v.index for v in versions] == [0, 1, 2]
    assert [v.content for v in versions] == ["v0", "first ", "second "]
    assert "v0" in source.calls[0]["system"]
    assert "first " in source.calls[1]["system"]


def test_source_failure_commits_nothing(store, settings, scripted_source) -> None:
    document = _seed(store)
    source = scripted_source(texts=[["partial ", RuntimeError("upstream closed")]])

    async def scenario():
        service = _service(source, store, settings)
        return await _drain(await service.update(user_id=USER, document_id=document.id, description="x"))

    deltas, outcome = asyncio.run(scenario())

    assert [d.content for d in deltas] == ["partial "]
    assert outcome.state is RunState.FAILED
    assert "upstream closed" in outcome.error
    assert outcome.version is None
    assert len(store.list_versions(document.id)) == 1


def test_commit_partial_policy(store, settings, scripted_source) -> None:
    document = _seed(store)
    source = scripted_source(texts=[["partial ", RuntimeError("upstream closed")]])

    async def scenario():
        service = _service(source, store, settings)
        service.commit_partial = True
        return await _drain(await service.update(user_id=USER, document_id=document.id, description="x"))

    _, outcome = asyncio.run(scenario())

    assert outcome.state is RunState.FAILED
    assert outcome.partial_committed
    assert outcome.version.content == "partial "
    assert len(store.list_versions(document.id)) == 2


def test_empty_output_fails_without_commit(store, settings, scripted_source) -> None:
    source = scripted_source(objects=[[{}, {"code": ""}]])

    async def scenario():
        service = _service(source, store, settings)
        handle = await service.create(user_id=USER, kind=ArtifactKind.CODE, title="nothing")
        return handle.document_id, *await _drain(handle)

    document_id, deltas, outcome = asyncio.run(scenario())

    assert deltas == []
    assert outcome.state is RunState.FAILED
    assert store.get_document(document_id) is None


def test_update_of_unknown_document_releases_admission(store, settings, scripted_source) -> None:
    async def scenario():
        service = _service(scripted_source(), store, settings)
        with pytest.raises(DocumentNotFoundError):
            await service.update(user_id=USER, document_id="missing", description="x")
        return service

    service = asyncio.run(scenario())
    assert not service.is_busy("missing")


def test_update_of_foreign_document_is_not_found(store, settings, scripted_source) -> None:
    document = _seed(store)

    async def scenario():
        service = _service(scripted_source(), store, settings)
        await service.update(user_id="someone-else", document_id=document.id, description="x")

    with pytest.raises(DocumentNotFoundError):
        asyncio.run(scenario())


def test_queue_sink_rejects_writes_after_close() -> None:
    async def scenario():
        sink = QueueSink()
        await sink.write_data(Delta("text-delta", "a"))
        sink.close()
        with pytest.raises(GenerationCancelled):
            await sink.write_data(Delta("text-delta", "b"))
        await sink.end()
        return [delta async for delta in sink.drain()]

    assert asyncio.run(scenario()) == [Delta("text-delta", "a")]


def test_cancelled_update_lookup_releases_admission(store, settings, scripted_source) -> None:
    document = _seed(store)
    source = scripted_source(texts=[["after "]])

    async def scenario():
        service = _service(source, store, settings)
        pending = asyncio.create_task(service.update(user_id=USER, document_id=document.id, description="x"))
        await asyncio.sleep(0)
        reserved = service.is_busy(document.id)
        pending.cancel()
        (result,) = await asyncio.gather(pending, return_exceptions=True)
        released = not service.is_busy(document.id)
        _, outcome = await _drain(await service.update(user_id=USER, document_id=document.id, description="y"))
        return reserved, result, released, outcome

    reserved, result, released, outcome = asyncio.run(scenario())

    assert reserved
    assert isinstance(result, asyncio.CancelledError)
    assert released
    assert outcome.state is RunState.DONE
    assert [v.content for v in store.list_versions(document.id)] == ["v0", "after "]


def test_failed_append_on_commit_keeps_history(store, settings, scripted_source) -> None:
    document = _seed(store)
    source = scripted_source(texts=[["new ", "text"]])

    async def scenario():
        service = _service(source, _FailingStore(SessionLocal), settings)
        deltas, outcome = await _drain(await service.update(user_id=USER, document_id=document.id, description="x"))
        return service, deltas, outcome

    service, deltas, outcome = asyncio.run(scenario())

    assert [d.content for d in deltas] == ["new ", "text"]
    assert outcome.state is RunState.FAILED
    assert "disk full" in outcome.error
    assert outcome.version is None
    assert [v.content for v in store.list_versions(document.id)] == ["v0"]
    assert not service.is_busy(document.id)


def test_failed_create_on_commit_leaves_no_document(store, settings, scripted_source) -> None:
    source = scripted_source(texts=[["Gravity ", "pulls."]])

    async def scenario():
        service = _service(source, _FailingStore(SessionLocal), settings)
        handle = await service.create(user_id=USER, kind=ArtifactKind.TEXT, title="Explain gravity")
        return service, handle.document_id, *await _drain(handle)

    service, document_id, deltas, outcome = asyncio.run(scenario())

    assert [d.content for d in deltas] == ["Gravity ", "pulls."]
    assert outcome.state is RunState.FAILED
    assert outcome.version is None
    assert store.get_document(document_id) is None
    assert not service.is_busy(document_id)


def test_failed_partial_commit_is_reported(store, settings, scripted_source) -> None:
    document = _seed(store)
    source = scripted_source(texts=[["partial ", RuntimeError("upstream closed")]])

    async def scenario():
        service = _service(source, _FailingStore(SessionLocal), settings)
        service.commit_partial = True
        deltas, outcome = await _drain(await service.update(user_id=USER, document_id=document.id, description="x"))
        return service, deltas, outcome

    service, deltas, outcome = asyncio.run(scenario())

    assert [d.content for d in deltas] == ["partial "]
    assert outcome.state is RunState.FAILED
    assert not outcome.partial_committed
    assert outcome.version is None
    assert "upstream closed" in outcome.error
    assert [v.content for v in store.list_versions(document.id)] == ["v0"]
    assert not service.is_busy(document.id)
