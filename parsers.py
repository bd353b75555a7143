"""
Best-effort extractors turning the model's free text into structured field values.

The model's output format is not guaranteed, so none of these functions validate anything:
a line or section that does not match is dropped and the result just gets smaller.
None of them raise on malformed input.
"""

import re
from typing import List, Optional, Tuple

from models import Exposition, Image, Source

KEYWORD_MAX_LENGTH = 15
MAX_PARAGRAPHS = 3

PLACEHOLDER_IMAGES: Tuple[Image, ...] = (
    Image(
        url="https://upload.wikimedia.org/wikipedia/commons/a/ac/No_image_available.svg",
        description="Aucune image disponible",
    ),
)

_PARENTHETICAL = re.compile(r"\([^)]*\)")
_WHITESPACE = re.compile(r"\s+")
_EMPHASIS = re.compile(r"(\*\*|__|\*|`)")
_QUOTES = "\"'«»“”‘’ "

# start of a heading line: blockquote/heading/emphasis marks and an optional "1." or "II)" numbering
_LINE_START = r"^[ \t>#*_\-]*(?:(?:\d+|[ivx]+)[.)][ \t]*)?[ \t#*_]*"
# a marker inside a line must follow the end of a sentence
_INLINE_START = r"(?<=[.!?])[ \t]+[*_#]*"
_SEPARATOR_AHEAD = r"(?=[*_ \t]*[:\-–—])"
# (section, marker, inline form needs a ":" or "-" after the marker)
_SECTION_MARKERS: Tuple[Tuple[str, str, bool], ...] = (
    ("introduction", r"introduction\b", True),
    ("paragraph_1", r"paragraph(?:e)?[ \t]*1\b", False),
    ("paragraph_2", r"paragraph(?:e)?[ \t]*2\b", False),
    ("paragraph_3", r"paragraph(?:e)?[ \t]*3\b", False),
    ("conclusion", r"conclusion\b", True),
)
# a paragraph heading line longer than this is treated as text, not as a title
_HEADING_MAX_LENGTH = 80

_RECORD_LINE = re.compile(
    r"(?:\d+[.)]\s*)?<?(https?://[^\s<>]+?)>?[.,;]*\s+[-–—]\s+(.+)$"
)
_LIST_PREFIX = re.compile(r"^\s*(?:[-*•]\s*)?(?:\d+[.)]\s*)?")


def _marker_forms(marker: str, needs_separator: bool) -> Tuple[str, str]:
    """Regexes for a marker opening a line and for a marker following a sentence on the same line."""
    inline = rf"{_INLINE_START}{marker}" + (_SEPARATOR_AHEAD if needs_separator else "")
    return rf"{_LINE_START}{marker}", inline


def _build_section_patterns() -> List[Tuple[str, List["re.Pattern[str]"]]]:
    patterns = []
    for index, (name, marker, needs_separator) in enumerate(_SECTION_MARKERS):
        later = [form for _, m, sep in _SECTION_MARKERS[index + 1:] for form in _marker_forms(m, sep)]
        stop = "|".join(later + [r"\Z"])
        # rest is the remainder of the marker's line, cut short by a later inline marker
        forms = [
            re.compile(rf"{start}(?P<rest>(?:(?!{stop})[^\n])*)(?P<body>.*?)(?={stop})",
                       re.IGNORECASE | re.MULTILINE | re.DOTALL)
            for start in _marker_forms(marker, needs_separator)
        ]
        patterns.append((name, forms))
    return patterns


_SECTION_PATTERNS = _build_section_patterns()


def clean_text(text: Optional[str]) -> str:
    """
    Drop parenthetical asides and collapse runs of whitespace.

    Args:
        text: Raw text, None is treated as empty.

    Returns:
        The cleaned single-line text.
    """
    if not text:
        return ""
    text = _PARENTHETICAL.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def _strip_decorations(text: str) -> str:
    text = _EMPHASIS.sub("", text)
    text = text.strip().lstrip("#:-–— ").strip()
    return text.strip(_QUOTES)


def parse_text(content: Optional[str]) -> str:
    """Plain fields (title, summary, historical context, anecdote)."""
    return _strip_decorations(clean_text(content))


def _is_heading(text: str, body: str) -> bool:
    """A short unpunctuated line followed by a body, e.g. "Approche Philosophique"."""
    return bool(body.strip()) and len(text) <= _HEADING_MAX_LENGTH and not text.endswith((".", "!", "?", "…"))


def _section_text(name: str, rest: str, body: str) -> str:
    rest = _EMPHASIS.sub("", clean_text(rest))
    if name.startswith("paragraph"):
        # "Paragraphe 1 - Titre : texte" carries text after its title,
        # "Paragraphe 1 : texte" carries text, "Paragraphe 1 - Approche Philosophique" is only a title
        title, colon, text = rest.partition(":")
        if colon and _strip_decorations(title):
            rest = text
        elif _is_heading(_strip_decorations(rest), body):
            rest = ""
    return _strip_decorations(clean_text(f"{rest} {body}"))


def parse_exposition(content: Optional[str]) -> Exposition:
    """
    Split a structured essay into introduction, up to three paragraphs and a conclusion.

    Section markers are matched case-insensitively in French or English ("Introduction",
    "Paragraphe 1", "Paragraph 2", "Conclusion"), preferably at the start of a line with markdown
    heading or bold markers allowed around them, otherwise right after the end of a sentence
    ("... tout. Paragraphe 1 : ..."). Inside a line, "Introduction" and "Conclusion" only count
    when followed by ":" or "-". A section runs until the next later marker. A missing marker
    leaves its section empty.

    Args:
        content: Raw model output.

    Returns:
        Exposition: The recovered sections.
    """
    if not content:
        return Exposition()

    sections = {}
    for name, forms in _SECTION_PATTERNS:
        match = next((m for m in (form.search(content) for form in forms) if m), None)
        sections[name] = _section_text(name, match.group("rest"), match.group("body")) if match else ""

    paragraphs = [sections[f"paragraph_{i}"] for i in range(1, MAX_PARAGRAPHS + 1)]
    return Exposition(
        introduction=sections["introduction"],
        paragraphs=[p for p in paragraphs if p],
        conclusion=sections["conclusion"],
    )


def _parse_records(content: Optional[str]) -> List[Tuple[str, str]]:
    records = []
    if not content:
        return records
    for line in content.splitlines():
        match = _RECORD_LINE.search(line)
        if not match:
            continue
        url = match.group(1).strip()
        text = _strip_decorations(clean_text(match.group(2)))
        if url and text:
            records.append((url, text))
    return records


def parse_sources(content: Optional[str]) -> List[Source]:
    """One Source per `[n.] <url> - <title>` line, in input order."""
    return [Source(url=url, title=title) for url, title in _parse_records(content)]


def parse_images(content: Optional[str]) -> List[Image]:
    """
    One Image per `[n.] <url> - <description>` line, in input order.

    Falls back to PLACEHOLDER_IMAGES when nothing parses so the UI always has something to show.
    """
    images = [Image(url=url, description=description) for url, description in _parse_records(content)]
    return images or list(PLACEHOLDER_IMAGES)


def parse_keywords(content: Optional[str]) -> List[str]:
    """
    Comma, line or semicolon separated keywords, trimmed and capped to KEYWORD_MAX_LENGTH characters each.

    A token keeps only what follows its last ":" so a lead-in like "Mots-clés :" is dropped.

    Args:
        content: Raw model output, e.g. "Mots-clés : vapeur, usine, charbon".

    Returns:
        The keywords in input order, empty tokens removed.
    """
    keywords = []
    if not content:
        return keywords
    for token in re.split(r"[,\n;]", content):
        if ":" in token:
            token = token.rsplit(":", 1)[1]
        token = _LIST_PREFIX.sub("", clean_text(token))
        token = _strip_decorations(token).rstrip(".").strip()
        if not token:
            continue
        keywords.append(token[:KEYWORD_MAX_LENGTH].rstrip())
    return keywords
