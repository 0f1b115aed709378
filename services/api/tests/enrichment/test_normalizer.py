"""Tests for the markdown normaliser and populated-field counting."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from services.api.enrichment.normalizer import (
    MAX_FIELD_LENGTHS,
    SECTION_FIELDS,
    clean_markdown,
    count_populated_fields,
    normalize,
    parse_sections,
    truncate_text,
)

ARTICLE = """[Jump to content](#bodyContent)
Main menu
From Wikipedia, the free encyclopedia
Paris is the capital and largest city of France.

![Eiffel Tower](https://upload.example/eiffel.jpg)

## History

Paris was founded in the 3rd century BC.

## Geography

Paris is located in northern central France.

## Demographics

About 2.1 million residents.

## Climate

Paris has an oceanic climate.

### Transport

Paris has an extensive metro network.
"""


class TestCleanMarkdown:

    def test_strips_leading_chrome(self):
        cleaned = clean_markdown(ARTICLE)
        assert "Jump to content" not in cleaned
        assert "Main menu" not in cleaned
        assert cleaned.startswith("Paris is the capital")

    def test_strips_images(self):
        assert "![Eiffel Tower]" not in clean_markdown(ARTICLE)

    def test_collapses_blank_lines(self):
        assert "\n\n\n" not in clean_markdown("one\n\n\n\n\ntwo")

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty(self, value):
        assert clean_markdown(value) == ""


class TestTruncateText:

    def test_short_text_unchanged(self):
        assert truncate_text("abc", 10) == "abc"

    def test_long_text_capped_with_ellipsis(self):
        out = truncate_text("x" * 50, 10)
        assert out == "xxxxxxx..."
        assert len(out) == 10

    def test_empty_is_none(self):
        assert truncate_text("", 10) is None
        assert truncate_text(None, 10) is None


class TestParseSections:

    def test_maps_headings_to_fields(self):
        sections = parse_sections(clean_markdown(ARTICLE))
        assert sections["description"] == "Paris is the capital and largest city of France."
        assert sections["history"] == "Paris was founded in the 3rd century BC."
        assert sections["geography"] == "Paris is located in northern central France."
        assert sections["climate"] == "Paris has an oceanic climate."
        assert sections["transportation"] == "Paris has an extensive metro network."

    def test_unknown_heading_is_skipped(self):
        sections = parse_sections(clean_markdown(ARTICLE))
        assert all("2.1 million" not in text for text in sections.values())

    def test_missing_sections_absent(self):
        sections = parse_sections("Just a lead paragraph.")
        assert sections == {"description": "Just a lead paragraph."}

    def test_fields_truncated_to_caps(self):
        sections = parse_sections("## History\n\n" + "h" * 10_000)
        assert len(sections["history"]) == MAX_FIELD_LENGTHS["history"]
        assert sections["history"].endswith("...")


class TestNormalize:

    def test_all_fields_present(self):
        scraped_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        fields = normalize("Lead only.", "https://en.wikipedia.org/wiki/Paris,_France", scraped_at)
        assert set(SECTION_FIELDS) <= set(fields)
        assert fields["description"] == "Lead only."
        assert fields["history"] is None
        assert fields["sourceUrl"] == "https://en.wikipedia.org/wiki/Paris,_France"
        assert fields["scrapedAt"] == scraped_at

    def test_scraped_at_defaults_to_now(self):
        fields = normalize("Lead.", "https://x.test")
        assert fields["scrapedAt"].tzinfo is not None


class TestCountPopulatedFields:

    def test_only_real_content_counts(self):
        payload = {
            "description": "Paris is...",
            "history": "",
            "geography": None,
            "climate": None,
            "transportation": [],
        }
        assert count_populated_fields(payload) == 1

    def test_whitespace_string_is_empty(self):
        assert count_populated_fields({"a": "   "}) == 0

    def test_non_empty_collections_count(self):
        assert count_populated_fields({"a": ["x"], "b": {"k": 1}, "c": {}}) == 2

    def test_scalars_count(self):
        assert count_populated_fields({"a": 0, "b": False, "c": 3.5}) == 3

    def test_empty_payload(self):
        assert count_populated_fields({}) == 0
