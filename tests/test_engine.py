"""Tests for the query engine: scoring, fusion, filters and degradation."""

import asyncio
from unittest.mock import Mock

import pytest

from conftest import FakeEmbedder, make_corpus
from docs_search_mcp.core.capability import CapabilityDetector, CapabilityProfile
from docs_search_mcp.core.engine import (
    LEXICAL_WEIGHT,
    SEMANTIC_WEIGHT,
    TITLE_BOOST,
    QueryEngine,
    fuse_scores,
    min_max_normalize,
)
from docs_search_mcp.core.errors import QueryCancelled
from docs_search_mcp.core.indexer import Indexer, document_tokens
from docs_search_mcp.core.loader import LoaderState, ProgressiveLoader
from docs_search_mcp.core.models import Document, SearchOptions
from docs_search_mcp.core.text import normalize_text


def build_artifact(documents=None, embedder=None):
    artifact = Indexer(embedder or FakeEmbedder()).build(documents or make_corpus())
    artifact.load_embeddings()
    return artifact


def run(coro):
    return asyncio.run(coro)


def ids(results):
    return [r.document_id for r in results]


class TestScoreHelpers:
    """Test cases for normalization and fusion."""

    def test_min_max_normalize(self):
        assert min_max_normalize({"a": 2.0, "b": 4.0, "c": 3.0}) == {"a": 0.0, "b": 1.0, "c": 0.5}

    def test_min_max_normalize_equal_scores(self):
        assert min_max_normalize({"a": 0.7, "b": 0.7}) == {"a": 1.0, "b": 1.0}
        assert min_max_normalize({"a": 0.0}) == {"a": 0.0}
        assert min_max_normalize({}) == {}

    def test_fusion_weighting(self):
        fused = fuse_scores({"lex": 1.0, "sem": 0.0}, {"lex": 0.0, "sem": 1.0}, True)
        assert fused["lex"] == pytest.approx(0.4)
        assert fused["sem"] == pytest.approx(0.6)
        assert fused["sem"] > fused["lex"]
        assert SEMANTIC_WEIGHT + LEXICAL_WEIGHT == pytest.approx(1.0)

    def test_fusion_without_semantic_uses_lexical_only(self):
        fused = fuse_scores({"a": 1.0, "b": 0.25}, {"a": 0.0, "b": 1.0}, False)
        assert fused == {"a": 1.0, "b": 0.25}

    def test_missing_signal_counts_as_zero(self):
        fused = fuse_scores({"a": 1.0}, {"b": 1.0}, True)
        assert fused["a"] == pytest.approx(LEXICAL_WEIGHT)
        assert fused["b"] == pytest.approx(SEMANTIC_WEIGHT)


class TestKeywordSearch:
    """Test cases for keyword-only ranking."""

    def setup_method(self):
        """Set up test fixtures."""
        self.artifact = build_artifact()
        self.engine = QueryEngine(self.artifact)

    def test_empty_query_returns_nothing(self):
        assert run(self.engine.search("")) == []
        assert run(self.engine.search("   ")) == []

    def test_no_lexical_match_without_semantic_returns_nothing(self):
        assert run(self.engine.search("kubernetes")) == []
        assert run(self.engine.search("the")) == []

    def test_keyword_results(self):
        results = run(self.engine.search("event sourcing"))
        assert ids(results) == ["v1.0.0/architecture/event-sourcing"]
        assert results[0].matched_terms == ("event", "sourcing")
        assert "sourcing" in results[0].snippet.lower()
        assert self.engine.last_used_semantic is False

    def test_normalization_symmetry(self):
        for doc in make_corpus():
            for token in document_tokens(doc):
                results = self.engine.rank(token.term, SearchOptions(limit=100))
                assert doc.id in ids(results), f"{token.term!r} does not reach {doc.id}"

    def test_tag_only_term_reaches_document(self):
        corpus = make_corpus() + [
            Document(id="tagged", title="Read Side", body="Projections.", tags=frozenset({"cqrs"}))
        ]
        engine = QueryEngine(build_artifact(corpus))
        assert ids(run(engine.search("cqrs"))) == ["tagged"]

    def test_category_only_term_reaches_document(self):
        results = run(self.engine.search("architecture"))
        assert ids(results) == ["v1.0.0/architecture/event-sourcing"]

    def test_final_term_matches_by_prefix(self):
        results = run(self.engine.search("orchestr"))
        assert ids(results) == ["drafts/saga-orchestration"]
        assert results[0].matched_terms == ("orchestration",)

    def test_exact_match_outranks_prefix_match(self):
        corpus = [
            Document(id="exact", title="Notes", body="event handlers"),
            Document(id="prefix", title="Notes", body="events handlers"),
        ]
        engine = QueryEngine(build_artifact(corpus))
        assert ids(run(engine.search("event"))) == ["exact", "prefix"]

    def test_snippet_centres_on_match_beyond_preview(self):
        body = "Background. " * 40 + "The compensating action undoes a step."
        engine = QueryEngine(build_artifact([Document(id="long", title="Saga", body=body)]))
        snippet = run(engine.search("compensating"))[0].snippet
        assert "compensating" in snippet
        assert snippet.startswith("...")

    def test_query_markup_is_normalized(self):
        results = run(self.engine.search("**EVENT** `Sourcing`"))
        assert ids(results) == ["v1.0.0/architecture/event-sourcing"]

    def test_version_filter_excludes_other_versions(self):
        unfiltered = run(self.engine.search("saga"))
        assert ids(unfiltered)[0] == "drafts/saga-orchestration"

        results = run(self.engine.search("saga", SearchOptions(version_filter="v1.0.0")))
        assert ids(results) == ["v1.0.0/patterns/saga"]

    def test_unversioned_documents_match_any_version(self):
        results = run(self.engine.search("install", SearchOptions(version_filter="v1.0.0")))
        assert ids(results) == ["getting-started"]

    def test_category_filter_is_case_insensitive_substring(self):
        assert run(self.engine.search("sourcing", SearchOptions(category_filter="pattern"))) == []
        results = run(self.engine.search("sourcing", SearchOptions(category_filter="ARCH")))
        assert ids(results) == ["v1.0.0/architecture/event-sourcing"]

    def test_limit_truncates(self):
        results = run(self.engine.search("saga", SearchOptions(limit=1)))
        assert len(results) == 1
        assert run(self.engine.search("saga", SearchOptions(limit=0))) == []


class TestOrdering:
    """Test cases for tie-breaking and title boosting."""

    def test_ties_break_by_recency_then_id(self):
        corpus = [
            Document(id="c", title="Alpha", body="kafka streams", last_modified=1.0),
            Document(id="a", title="Gamma", body="kafka streams", last_modified=1.0),
            Document(id="b", title="Beta", body="kafka streams", last_modified=2.0),
        ]
        engine = QueryEngine(build_artifact(corpus))
        results = run(engine.search("kafka"))
        assert ids(results) == ["b", "a", "c"]
        assert len({r.score for r in results}) == 1

    def test_title_match_outranks_recency(self):
        corpus = [
            Document(id="title", title="Kafka Streams", body="overview text", last_modified=1.0),
            Document(id="body", title="Overview", body="kafka streams text", last_modified=9.0),
        ]
        engine = QueryEngine(build_artifact(corpus))
        results = run(engine.search("kafka streams"))
        assert ids(results) == ["title", "body"]
        assert results[0].score == pytest.approx(TITLE_BOOST)
        assert results[1].score == pytest.approx(1.0)

    def test_results_are_deterministic(self):
        engine = QueryEngine(build_artifact())
        first = run(engine.search("saga coordinator"))
        second = run(engine.search("saga coordinator"))
        assert first == second


class TestHybridSearch:
    """Test cases for semantic + keyword fusion."""

    def setup_method(self):
        """Set up test fixtures."""
        self.embedder = FakeEmbedder()
        self.artifact = build_artifact(embedder=self.embedder)

    def doc_text(self, doc_id):
        doc = next(d for d in make_corpus() if d.id == doc_id)
        return f"{normalize_text(doc.title)}\n{normalize_text(doc.body)}"

    def test_fusion_ranks_semantic_match_above_lexical_match(self):
        corpus = [
            Document(id="lex", title="Notes", body="kafka consumer groups"),
            Document(id="sem", title="Messaging", body="brokers and partitions"),
        ]
        engine = QueryEngine(build_artifact(corpus))
        results = engine.rank("kafka", SearchOptions(), semantic_scores={"lex": 0.31, "sem": 0.9})

        assert ids(results) == ["sem", "lex"]
        assert results[0].score == pytest.approx(0.6)
        assert results[1].score == pytest.approx(0.4)

    def test_semantic_only_match_is_reachable(self):
        target = "v1.0.0/patterns/saga"
        query_vector = self.embedder.embed(self.doc_text(target))
        embedder = FakeEmbedder(vectors={"distributed transactions": query_vector})
        engine = QueryEngine(self.artifact, embedder=embedder)

        results = run(engine.search("distributed transactions"))

        assert engine.last_used_semantic is True
        assert ids(results)[0] == target
        assert results[0].matched_terms == ()

    def test_similarity_floor_excludes_unrelated_documents(self):
        engine = QueryEngine(self.artifact, embedder=FakeEmbedder(), min_similarity=0.99)
        assert run(engine.search("kubernetes")) == []

    def test_embedding_failure_degrades_to_keywords(self):
        engine = QueryEngine(self.artifact, embedder=FakeEmbedder(fail_embed=True))
        results = run(engine.search("event sourcing"))

        assert ids(results) == ["v1.0.0/architecture/event-sourcing"]
        assert results[0].score == pytest.approx(TITLE_BOOST)
        assert engine.last_used_semantic is False

    def test_model_version_mismatch_uses_keywords_only(self):
        embedder = FakeEmbedder(model_version="fake-v2")
        engine = QueryEngine(self.artifact, embedder=embedder)

        assert engine.semantic_available() is False
        results = run(engine.search("event sourcing"))

        assert ids(results) == ["v1.0.0/architecture/event-sourcing"]
        assert embedder.embed_calls == 0
        assert engine.last_used_semantic is False

    def test_query_timeout_falls_back_to_keywords(self, caplog):
        embedder = FakeEmbedder(delays={"event sourcing": 0.5})
        engine = QueryEngine(self.artifact, embedder=embedder, query_timeout=0.05)

        results = run(engine.search("event sourcing"))

        assert ids(results) == ["v1.0.0/architecture/event-sourcing"]
        assert engine.last_used_semantic is False
        assert "exceeded" in caplog.text

    def test_newer_query_cancels_older_one(self):
        embedder = FakeEmbedder(delays={"saga": 0.3})
        engine = QueryEngine(self.artifact, embedder=embedder)

        async def scenario():
            older = asyncio.ensure_future(engine.search("saga"))
            await asyncio.sleep(0.05)
            newer = await engine.search("event sourcing")
            with pytest.raises(QueryCancelled):
                await older
            return newer

        results = run(scenario())
        assert ids(results)[0] == "v1.0.0/architecture/event-sourcing"

    def test_loading_state_answers_with_keywords(self):
        artifact = Indexer(self.embedder).build(make_corpus())
        detector = CapabilityDetector(CapabilityProfile(available_memory_gb=16.0))
        embedder = FakeEmbedder(loaded=False)
        loader = ProgressiveLoader(artifact, embedder, detector)
        engine = QueryEngine(artifact, embedder=embedder, loader=loader)

        async def scenario():
            loader.start()
            assert loader.state is LoaderState.LOADING
            during = await engine.search("event sourcing")
            used_during = engine.last_used_semantic
            await loader.wait()
            after = await engine.search("event sourcing")
            return during, used_during, after

        during, used_during, after = run(scenario())
        assert used_during is False
        assert ids(during) == ["v1.0.0/architecture/event-sourcing"]
        assert engine.last_used_semantic is True
        assert ids(after)[0] == "v1.0.0/architecture/event-sourcing"

    def test_readiness_is_rechecked_after_embedding(self):
        loader = Mock()
        loader.is_ready.side_effect = [True, False, False]
        engine = QueryEngine(self.artifact, embedder=FakeEmbedder(), loader=loader)

        results = run(engine.search("event sourcing"))

        assert ids(results) == ["v1.0.0/architecture/event-sourcing"]
        assert engine.last_used_semantic is False
        assert engine.embedder.embed_calls == 1


class TestSuggest:
    """Test cases for query completion."""

    def setup_method(self):
        """Set up test fixtures."""
        self.engine = QueryEngine(build_artifact())

    def test_completes_final_word(self):
        assert self.engine.suggest("orch") == ["orchestration"]
        assert self.engine.suggest("Event sou") == ["event sourcing"]

    def test_exact_word_is_a_suggestion(self):
        assert self.engine.suggest("saga")[0] == "saga"

    def test_completions_must_share_a_document_with_earlier_terms(self):
        assert self.engine.suggest("install sou") == []
        assert self.engine.suggest("kubernetes sa") == []

    def test_ranked_by_document_count(self):
        # "se" completes to terms of differing document frequency
        suggestions = self.engine.suggest("se", limit=10)
        counts = [
            self.engine.artifact.postings.document_frequency(s) for s in suggestions
        ]
        assert counts == sorted(counts, reverse=True)
        assert suggestions

    def test_short_or_empty_input(self):
        assert self.engine.suggest("") == []
        assert self.engine.suggest("s") == []
        assert self.engine.suggest("saga", limit=0) == []
