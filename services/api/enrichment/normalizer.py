"""
Turns a raw Wikipedia markdown article into the structured enrichment fields.

Steps:
  1. clean_markdown  strip page chrome (banners, jump links, coordinates,
                     redirect/disambiguation notices, infobox tables, images)
  2. parse_sections  heading-based segmentation into the five prose fields
  3. truncate_text   per-field length caps

Cleaning heuristics are tuned against Wikipedia's markdown rendering and are
not a stable contract. A section the article does not have is simply absent.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

SECTION_FIELDS = ("description", "history", "geography", "climate", "transportation")

MAX_FIELD_LENGTHS: dict[str, int] = {
    "description": 5000,
    "history": 3000,
    "geography": 2000,
    "climate": 2000,
    "transportation": 2000,
}

_ARTICLE_MARKER = "From Wikipedia, the free encyclopedia"

# Applied in order
_CHROME_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\[Jump to content\][\s\S]*?\(#bodyContent\)"),
    re.compile(r"\[!\[Banner logo\][\s\S]*?\[Hide\]\([\s\S]*?\)"),
    re.compile(r"\[Coordinates\][\s\S]*?Geographic coordinate system[\s\S]*?\n"),
    re.compile(r"\(Redirected from \[.*?\]\(.*?\)\)"),
    re.compile(r"This article is about.*?For .*?, see \[.*?\]\(.*?\)\.?\n*"),
    re.compile(r"\".*?\" redirects here\..*?\n"),
    # Infobox / data tables
    re.compile(r"\|[\s\S]*?\|\s*\n"),
    # Linked images, then bare images
    re.compile(r"\[!\[.*?\]\(.*?\)\]\(.*?\)"),
    re.compile(r"!\[.*?\]\(.*?\)"),
]

_HEADING_RE = re.compile(r"^#{1,3}\s+(.+)")

# heading keyword -> field, checked in order
_HEADING_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("history", "historical"), "history"),
    (("geography", "topography"), "geography"),
    (("climate", "weather"), "climate"),
    (("transport", "infrastructure", "transit"), "transportation"),
]

_SKIP = "skip"


def clean_markdown(markdown: str | None) -> str:
    """Strip navigation, banners, and metadata from a scraped article."""
    if not markdown:
        return ""

    cleaned = markdown
    marker_at = cleaned.find(_ARTICLE_MARKER)
    if marker_at != -1:
        cleaned = cleaned[marker_at + len(_ARTICLE_MARKER):]

    for pattern in _CHROME_PATTERNS:
        cleaned = pattern.sub("", cleaned)

    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def truncate_text(text: str | None, max_length: int) -> Optional[str]:
    """Cap text at max_length characters, ending in '...' when cut."""
    if not text:
        return None
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _section_for_heading(heading: str) -> str:
    lowered = heading.lower().strip()
    for keywords, field in _HEADING_KEYWORDS:
        if any(k in lowered for k in keywords):
            return field
    return _SKIP


def parse_sections(markdown: str | None) -> dict[str, str]:
    """
    Split cleaned markdown into the five prose fields.

    Text before the first heading is the description. Recognised headings
    (levels 1-3) open their field; any other heading opens a skipped region.
    When a field's heading repeats, the later section wins.
    """
    sections: dict[str, str] = {}
    if not markdown:
        return sections

    current = "description"
    buffer: list[str] = []

    def _flush() -> None:
        if current == _SKIP or not buffer:
            return
        content = "\n".join(buffer).strip()
        if content:
            sections[current] = truncate_text(content, MAX_FIELD_LENGTHS[current])

    for line in markdown.split("\n"):
        match = _HEADING_RE.match(line)
        if match:
            _flush()
            current = _section_for_heading(match.group(1))
            buffer = []
        elif current != _SKIP:
            buffer.append(line)

    _flush()
    return sections


def normalize(raw_markdown: str, source_url: str, scraped_at: datetime | None = None) -> dict[str, Any]:
    """
    Full normalisation: clean, section, and attach source metadata.

    Every section field is present in the result; missing sections are None.
    """
    sections = parse_sections(clean_markdown(raw_markdown))
    fields: dict[str, Any] = {name: sections.get(name) for name in SECTION_FIELDS}
    fields["sourceUrl"] = source_url
    fields["scrapedAt"] = scraped_at or datetime.now(timezone.utc)
    return fields


def count_populated_fields(payload: Mapping[str, Any]) -> int:
    """
    Count fields carrying real content. Observational only.

    Populated: non-blank strings, non-empty lists/tuples/sets, non-empty mappings,
    and any other non-None scalar (numbers, booleans, timestamps).
    """
    count = 0
    for value in payload.values():
        if value is None:
            continue
        if isinstance(value, str):
            if value.strip():
                count += 1
        elif isinstance(value, (list, tuple, set, frozenset)):
            if len(value) > 0:
                count += 1
        elif isinstance(value, Mapping):
            if len(value) > 0:
                count += 1
        else:
            count += 1
    return count
