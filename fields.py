from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

from errors import ValidationError
from parsers import parse_exposition, parse_images, parse_keywords, parse_sources, parse_text


@dataclass(frozen=True)
class FieldSpec:
    """One retrievable field: its name, a display label and the parser for the model's answer."""
    name: str
    label: str
    parser: Callable[[str], Any]

    def parse(self, content: str) -> Any:
        return self.parser(content)


# dispatch and delivery order
FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("title", "Titre", parse_text),
    FieldSpec("summary", "Résumé", parse_text),
    FieldSpec("historical_context", "Contexte", parse_text),
    FieldSpec("anecdote", "Anecdote", parse_text),
    FieldSpec("exposition", "Exposé", parse_exposition),
    FieldSpec("sources", "Sources", parse_sources),
    FieldSpec("images", "Images", parse_images),
    FieldSpec("keywords", "Mots-clés", parse_keywords),
)

FIELD_ORDER: Tuple[str, ...] = tuple(spec.name for spec in FIELDS)

_REGISTRY: Dict[str, FieldSpec] = {spec.name: spec for spec in FIELDS}


def get_field(name: str) -> FieldSpec:
    """
    Look up a field by name.

    Args:
        name: One of FIELD_ORDER.

    Returns:
        FieldSpec: The field's registry entry.

    Raises:
        ValidationError: If the name is not a known field.
    """
    try:
        return _REGISTRY[name]
    except KeyError:
        raise ValidationError(f"Unknown field: {name}. Expected one of: {', '.join(FIELD_ORDER)}")


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if hasattr(value, "is_empty"):
        return value.is_empty()
    return len(value) == 0
