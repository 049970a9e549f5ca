"""Tests for text normalization and tokenization."""

from docs_search_mcp.core.text import (
    contains_phrase,
    content_hash,
    make_preview,
    make_snippet,
    last_word,
    normalize_text,
    plain_text,
    query_terms,
    query_tokens,
    tokenize,
)


class TestNormalization:
    """Test cases for normalize_text."""

    def test_lowercases_and_collapses_whitespace(self):
        assert normalize_text("  Event\n\n  SOURCING\t") == "event sourcing"

    def test_strips_markup_and_code_fences(self):
        text = "# Title\n\nSee [the guide](http://x/y) and `run()`.\n```python\nsecret_code()\n```\n<b>bold</b>"
        normalized = normalize_text(text)
        assert "secret_code" not in normalized
        assert "http" not in normalized
        assert normalized.startswith("title see the guide and run()")
        assert "bold" in normalized
        assert "<b>" not in normalized

    def test_empty_input(self):
        assert normalize_text("") == ""
        assert normalize_text(None) == ""


class TestTokenize:
    """Test cases for tokenize and query_terms."""

    def test_drops_stopwords_and_short_terms(self):
        terms = [t.term for t in tokenize("The saga of a CQRS system")]
        assert terms == ["saga", "cqrs", "system"]

    def test_positions_count_dropped_words(self):
        tokens = tokenize("event in the sourcing")
        assert [(t.term, t.position) for t in tokens] == [("event", 0), ("sourcing", 3)]

    def test_underscores_split_terms(self):
        assert [t.term for t in tokenize("append_only_log")] == ["append", "only", "log"]

    def test_query_terms_unique_in_order(self):
        assert query_terms("Saga saga pattern SAGA") == ["saga", "pattern"]

    def test_query_tokens_keep_query_positions(self):
        tokens = query_tokens("state of the art state")
        assert [(t.term, t.position) for t in tokens] == [("state", 0), ("art", 3)]

    def test_last_word_keeps_short_words(self):
        assert last_word("Event **So**") == "so"
        assert last_word("saga of") == "of"
        assert last_word("  ") == ""

    def test_index_and_query_tokenization_agree(self):
        body = "**Event-Sourcing** with `Kafka`"
        indexed = {t.term for t in tokenize(body)}
        for term in query_terms("event sourcing kafka"):
            assert term in indexed


class TestContentHash:
    """Test cases for content_hash."""

    def test_whitespace_edits_keep_hash(self):
        assert content_hash("Title", "some   body\ntext") == content_hash("Title", "some body text")

    def test_body_change_changes_hash(self):
        assert content_hash("Title", "body one") != content_hash("Title", "body two")

    def test_title_participates(self):
        assert content_hash("A", "body") != content_hash("B", "body")


class TestPreviewAndSnippet:
    """Test cases for previews and snippets."""

    def test_preview_truncates(self):
        preview = make_preview("word " * 100, max_chars=20)
        assert preview.endswith("...")
        assert len(preview) <= 23

    def test_short_preview_unchanged(self):
        assert make_preview("Short *body*") == "Short body"

    def test_snippet_centers_on_first_match(self):
        preview = "alpha " * 40 + "saga coordinator " + "omega " * 40
        snippet = make_snippet(preview, ["saga"], width=60)
        assert "saga" in snippet
        assert snippet.startswith("...")

    def test_snippet_without_match_uses_prefix(self):
        preview = "x" * 300
        assert make_snippet(preview, ["saga"], width=50) == "x" * 50 + "..."


class TestContainsPhrase:
    """Test cases for contains_phrase."""

    def test_adjacent_positions(self):
        assert contains_phrase([[3, 10], [4]])

    def test_non_adjacent_positions(self):
        assert not contains_phrase([[3], [5]])

    def test_single_term_is_not_a_phrase(self):
        assert not contains_phrase([[1, 2]])

    def test_offsets_follow_query_spacing(self):
        # "state of the art": art sits three words after state
        assert contains_phrase([[5], [8]], offsets=[0, 3])
        assert not contains_phrase([[5], [6]], offsets=[0, 3])


class TestPlainText:
    """Test cases for plain_text and snippets over full text."""

    def test_plain_text_strips_markup(self):
        assert plain_text("# Heading\n\nSome *emphasis* and `code`") == "Heading Some emphasis and code"

    def test_snippet_reaches_past_the_preview(self):
        body = "intro " * 100 + "the compensating transaction rolls back"
        text = plain_text(body)
        snippet = make_snippet(text, ["compensating"], width=80)
        assert "compensating" in snippet
        assert snippet.startswith("...")
        assert "compensating" not in make_preview(body)
