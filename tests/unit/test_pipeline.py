"""Unit tests for the incremental indexing pipeline."""

from __future__ import annotations

import json

import pytest

from semantic_index.exceptions import ContentDecodeError, DocumentNotFoundError
from semantic_index.ingestion.pipeline import DocumentIndexer
from semantic_index.retrieval.search import HybridSearchEngine
from semantic_index.storage import DocumentModel, IndexStatus

INTRO = " ".join(["Matcha is a finely ground powder of green tea leaves."] * 3)
BODY = " ".join(["Sift the powder, add hot water, and whisk until frothy."] * 3)
BODY_EDITED = " ".join(["Sift the powder, add water at eighty degrees, and whisk."] * 3)


def _h(text: str, level: int = 1) -> dict:
    return {"type": "heading", "attrs": {"level": level}, "content": [{"type": "text", "text": text}]}


def _p(text: str) -> dict:
    return {"type": "paragraph", "content": [{"type": "text", "text": text}]}


def _state(*nodes: dict) -> dict:
    return {"type": "doc", "content": list(nodes)}


TWO_SECTIONS = _state(_h("Intro", 1), _p(INTRO), _h("Body", 2), _p(BODY))


@pytest.fixture()
def indexer(repository, content_store, title_store, fake_embeddings) -> DocumentIndexer:
    return DocumentIndexer(
        repository,
        content_store,
        title_store,
        fake_embeddings,
        chunk_strategy="paragraph",
        min_chunk_size=50,
    )


def _rename(repository, document_id: str, title: str) -> None:
    with repository.transaction() as session:
        session.get(DocumentModel, document_id).title = title


class TestFirstIndex:
    def test_indexes_all_chunks_and_title(self, indexer, add_document, repository, content_store, title_store) -> None:
        add_document("doc-1", title="Brewing Matcha")

        result = indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        assert not result.skipped
        assert result.chunk_count == 2
        assert result.title_updated

        state = repository.get("doc-1")
        rows = content_store.rows_for("doc-1")
        assert [r.id for r in rows] == [f"doc-1:{state.index_generation}:0", f"doc-1:{state.index_generation}:1"]
        assert [r.metadata["chunk_index"] for r in rows] == [0, 1]
        assert {r.metadata["generation"] for r in rows} == {state.index_generation}
        assert rows[1].metadata["header_breadcrumb"] == "Intro > Body"
        assert rows[1].metadata["organization_id"] == "org-1"
        assert rows[0].content.startswith("Intro\n\n<p>Matcha")

        assert title_store.rows["doc-1"].content == "Brewing Matcha"

        assert state.index_status is IndexStatus.INDEXED
        assert set(state.section_hashes) == {"Intro", "Body"}
        assert state.last_indexed_title == "Brewing Matcha"

    def test_accepts_serialised_content_state(self, indexer, add_document, content_store) -> None:
        add_document("doc-1")
        result = indexer.process_document_embedding("doc-1", json.dumps(TWO_SECTIONS))
        assert result.chunk_count == 2

    def test_chunks_are_embedded_in_one_batch(self, indexer, add_document, fake_embeddings) -> None:
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        assert len(fake_embeddings.document_calls) == 1
        assert len(fake_embeddings.document_calls[0]) == 2

    def test_heading_strategy_records_heading_metadata(
        self, repository, content_store, title_store, fake_embeddings, add_document
    ) -> None:
        indexer = DocumentIndexer(repository, content_store, title_store, fake_embeddings, chunk_strategy="heading")
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        rows = content_store.rows_for("doc-1")
        assert [(r.metadata["heading"], r.metadata["heading_level"]) for r in rows] == [("Intro", 1), ("Body", 2)]


class TestSkipping:
    def test_unchanged_content_is_skipped(self, indexer, add_document, fake_embeddings) -> None:
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        calls = len(fake_embeddings.document_calls)

        result = indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        assert result.skipped
        assert result.reason == "content_unchanged"
        assert not result.title_updated
        assert len(fake_embeddings.document_calls) == calls

    def test_headingless_document_is_tracked_as_one_section(self, indexer, add_document, content_store) -> None:
        add_document("doc-1")
        state = _state(_p(INTRO))

        assert not indexer.process_document_embedding("doc-1", state).skipped
        assert indexer.process_document_embedding("doc-1", state).skipped
        assert not indexer.process_document_embedding("doc-1", _state(_p(BODY))).skipped
        assert "Sift" in content_store.rows_for("doc-1")[0].content

    def test_empty_content_indexes_nothing(self, indexer, add_document, repository, content_store) -> None:
        add_document("doc-1")

        result = indexer.process_document_embedding("doc-1", None)

        assert not result.skipped
        assert result.chunk_count == 0
        assert content_store.rows_for("doc-1") == []
        assert repository.get("doc-1").index_status is IndexStatus.INDEXED
        assert indexer.process_document_embedding("doc-1", "").skipped

    def test_title_only_change_refreshes_title_row(
        self, indexer, add_document, repository, content_store, title_store, fake_embeddings
    ) -> None:
        add_document("doc-1", title="Brewing Matcha")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        chunks_before = {r.id: r.content for r in content_store.rows_for("doc-1")}
        calls = len(fake_embeddings.document_calls)

        _rename(repository, "doc-1", "Matcha, Properly Whisked")
        result = indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        assert result.skipped
        assert result.reason == "content_unchanged"
        assert result.title_updated
        assert title_store.rows["doc-1"].content == "Matcha, Properly Whisked"
        assert repository.get("doc-1").last_indexed_title == "Matcha, Properly Whisked"
        assert {r.id: r.content for r in content_store.rows_for("doc-1")} == chunks_before
        assert len(fake_embeddings.document_calls) == calls

    def test_blank_title_removes_title_row(self, indexer, add_document, repository, title_store) -> None:
        add_document("doc-1", title="Brewing Matcha")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        _rename(repository, "doc-1", "")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        assert "doc-1" not in title_store.rows

    def test_edit_without_text_change_leaves_document_indexed(self, indexer, add_document, repository) -> None:
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        repository.record_content_change("doc-1")
        assert repository.get("doc-1").index_status is IndexStatus.INDEXED

        assert indexer.process_document_embedding("doc-1", TWO_SECTIONS).skipped
        assert repository.get("doc-1").index_status is IndexStatus.INDEXED

    def test_skip_restores_indexed_status(self, indexer, add_document, repository) -> None:
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        repository.set_status("doc-1", IndexStatus.PENDING)

        assert indexer.process_document_embedding("doc-1", TWO_SECTIONS).skipped
        assert repository.get("doc-1").index_status is IndexStatus.INDEXED


class TestReindex:
    def test_edit_rechunks_whole_document(self, indexer, add_document, repository, content_store) -> None:
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        old_hashes = dict(repository.get("doc-1").section_hashes)

        edited = _state(_h("Intro", 1), _p(INTRO), _h("Body", 2), _p(BODY_EDITED))
        result = indexer.process_document_embedding("doc-1", edited)

        assert not result.skipped
        assert result.chunk_count == 2
        assert not result.title_updated
        rows = content_store.rows_for("doc-1")
        assert "eighty degrees" in rows[1].content
        new_hashes = repository.get("doc-1").section_hashes
        assert new_hashes["Intro"] == old_hashes["Intro"]
        assert new_hashes["Body"] != old_hashes["Body"]

    def test_shrinking_document_removes_stale_chunks(self, indexer, add_document, content_store) -> None:
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        indexer.process_document_embedding("doc-1", _state(_h("Intro", 1), _p(INTRO)))

        assert [r.metadata["chunk_index"] for r in content_store.rows_for("doc-1")] == [0]

    def test_rebuild_is_idempotent(self, indexer, add_document, repository, content_store) -> None:
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        first = [(r.metadata["chunk_index"], r.content, r.embedding) for r in content_store.rows_for("doc-1")]

        # Forget the hashes so the same content is rebuilt from scratch.
        with repository.transaction() as session:
            session.get(DocumentModel, "doc-1").section_hashes = None
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        rows = content_store.rows_for("doc-1")
        assert [(r.metadata["chunk_index"], r.content, r.embedding) for r in rows] == first
        assert {r.metadata["generation"] for r in rows} == {repository.get("doc-1").index_generation}

    def test_search_sees_one_chunk_set_while_reindexing(
        self, indexer, add_document, repository, content_store, title_store, fake_embeddings, monkeypatch
    ) -> None:
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        old_contents = {r.content for r in content_store.rows_for("doc-1")}
        query = content_store.rows_for("doc-1")[1].content
        engine = HybridSearchEngine(content_store, title_store, repository, fake_embeddings)

        seen: list[list[str]] = []
        write = content_store.upsert

        def write_then_search(records) -> None:
            write(records)
            hits = engine.search_documents_in_specific_document(query, "doc-1", limit=10)
            seen.append([hit.content for hit in hits])

        monkeypatch.setattr(content_store, "upsert", write_then_search)
        edited = _state(_h("Intro", 1), _p(INTRO), _h("Body", 2), _p(BODY_EDITED))
        indexer.process_document_embedding("doc-1", edited)

        assert len(seen) == 1
        assert seen[0]
        assert set(seen[0]) <= old_contents
        after = engine.search_documents_in_specific_document(query, "doc-1", limit=10)
        assert any("eighty degrees" in hit.content for hit in after)

    def test_other_documents_are_untouched(self, indexer, add_document, content_store) -> None:
        add_document("doc-1")
        add_document("doc-2")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        indexer.process_document_embedding("doc-2", _state(_p(INTRO)))

        indexer.process_document_embedding("doc-2", _state(_p(BODY)))

        assert len(content_store.rows_for("doc-1")) == 2


class TestFailures:
    def test_unknown_document_raises(self, indexer) -> None:
        with pytest.raises(DocumentNotFoundError):
            indexer.process_document_embedding("missing", TWO_SECTIONS)

    def test_undecodable_content_leaves_status_alone(self, indexer, add_document, repository) -> None:
        add_document("doc-1")
        with pytest.raises(ContentDecodeError):
            indexer.process_document_embedding("doc-1", "{broken")
        assert repository.get("doc-1").index_status is IndexStatus.PENDING

    def test_store_failure_marks_document_failed(self, indexer, add_document, repository, content_store) -> None:
        add_document("doc-1")
        content_store.fail_on_upsert = True

        with pytest.raises(RuntimeError, match="vector store unavailable"):
            indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        state = repository.get("doc-1")
        assert state.index_status is IndexStatus.FAILED
        assert state.section_hashes is None
        assert state.last_indexed_title is None

    def test_failed_document_is_retried_on_next_run(self, indexer, add_document, repository, content_store) -> None:
        add_document("doc-1")
        content_store.fail_on_upsert = True
        with pytest.raises(RuntimeError):
            indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        content_store.fail_on_upsert = False
        result = indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        assert not result.skipped
        assert repository.get("doc-1").index_status is IndexStatus.INDEXED

    def test_embedding_failure_marks_document_failed(self, indexer, add_document, repository, fake_embeddings) -> None:
        add_document("doc-1")

        def unavailable(texts):
            raise RuntimeError("embedding service unavailable")

        fake_embeddings.embed_documents = unavailable

        with pytest.raises(RuntimeError, match="embedding service unavailable"):
            indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        assert repository.get("doc-1").index_status is IndexStatus.FAILED

    def test_failed_reindex_keeps_previous_chunks_and_forces_rebuild(
        self, indexer, add_document, repository, content_store, title_store
    ) -> None:
        add_document("doc-1", title="Brewing Matcha")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        original = [r.content for r in content_store.rows_for("doc-1")]

        _rename(repository, "doc-1", "Matcha, Properly Whisked")
        title_store.fail_on_upsert = True
        with pytest.raises(RuntimeError):
            indexer.process_document_embedding("doc-1", _state(_h("Intro", 1), _p("Completely different text. " * 5)))

        state = repository.get("doc-1")
        assert state.index_status is IndexStatus.FAILED
        assert state.section_hashes is None
        assert state.last_indexed_content_hash is None
        live = [r.content for r in content_store.rows_for("doc-1") if r.metadata["generation"] == state.index_generation]
        assert live == original

        title_store.fail_on_upsert = False
        result = indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        assert not result.skipped
        assert [r.content for r in content_store.rows_for("doc-1")] == original
        assert repository.get("doc-1").index_status is IndexStatus.INDEXED

    def test_failed_document_is_never_skipped(self, indexer, add_document, repository, fake_embeddings) -> None:
        add_document("doc-1")
        indexer.process_document_embedding("doc-1", TWO_SECTIONS)
        repository.set_status("doc-1", IndexStatus.FAILED)

        result = indexer.process_document_embedding("doc-1", TWO_SECTIONS)

        assert not result.skipped
        assert repository.get("doc-1").index_status is IndexStatus.INDEXED


def test_remove_document_drops_chunk_and_title_rows(indexer, add_document, content_store, title_store) -> None:
    add_document("doc-1")
    indexer.process_document_embedding("doc-1", TWO_SECTIONS)

    indexer.remove_document("doc-1")

    assert content_store.rows_for("doc-1") == []
    assert "doc-1" not in title_store.rows
