"""
Prompt templates for every search field, in French and English.

The product is French-first: when the language heuristic cannot decide, prompts are French.
"""

import re
from typing import Dict, Optional

from errors import ValidationError

FRENCH = "fr"
ENGLISH = "en"
LANGUAGES = (FRENCH, ENGLISH)

_FRENCH_DIACRITICS = re.compile(r"[àâäçéèêëîïôöùûüÿœæ]", re.IGNORECASE)
_WORD = re.compile(r"[a-zàâäçéèêëîïôöùûüÿœæ']+", re.IGNORECASE)

_FRENCH_WORDS = {
    "le", "la", "les", "un", "une", "des", "du", "de", "et", "est", "sont", "qui", "que",
    "quoi", "quel", "quelle", "quels", "quelles", "pourquoi", "comment", "quand", "où",
    "dans", "sur", "pour", "avec", "au", "aux", "ce", "cette", "ces", "qu'est-ce",
}
_ENGLISH_WORDS = {
    "the", "a", "an", "of", "and", "is", "are", "was", "were", "what", "which", "who",
    "why", "how", "when", "where", "in", "on", "for", "with", "to", "this", "that", "does",
}

PROMPTS: Dict[str, Dict[str, str]] = {
    FRENCH: {
        "title": "Donne-moi un titre accrocheur (5-10 mots max) pour : {query}",
        "summary": "Fais un résumé en 3 lignes pour : {query}",
        "historical_context": "Donne-moi 3 repères historiques (dates ou périodes clés, 4 lignes max) pour : {query}",
        "anecdote": "Donne-moi une anecdote historique (3 lignes max) sur : {query}",
        "exposition": (
            "Rédige un exposé structuré sur : {query}\n"
            "Introduction (3 lignes max)\n"
            "Paragraphe 1 - Approche Philosophique (8-10 lignes)\n"
            "Paragraphe 2 - Analyse Critique (8-10 lignes)\n"
            "Paragraphe 3 - Perspective Contemporaine (8-10 lignes)\n"
            "Conclusion (3 lignes max)"
        ),
        "sources": "Donne-moi 3 sources fiables (format : url - titre court, une par ligne) pour : {query}",
        "images": "Donne-moi 3 images libres de droits (format : url - description courte, une par ligne) pour : {query}",
        "keywords": "Donne-moi 3 mots-clés pertinents (séparés par des virgules, 15 caractères max chacun) pour : {query}",
    },
    ENGLISH: {
        "title": "Give me a catchy title (5-10 words max) for: {query}",
        "summary": "Write a 3-line summary for: {query}",
        "historical_context": "Give me 3 historical landmarks (key dates or periods, 4 lines max) for: {query}",
        "anecdote": "Give me a historical anecdote (3 lines max) about: {query}",
        "exposition": (
            "Write a structured essay about: {query}\n"
            "Introduction (3 lines max)\n"
            "Paragraph 1 - Philosophical Approach (8-10 lines)\n"
            "Paragraph 2 - Critical Analysis (8-10 lines)\n"
            "Paragraph 3 - Contemporary Perspective (8-10 lines)\n"
            "Conclusion (3 lines max)"
        ),
        "sources": "Give me 3 reliable sources (format: url - short title, one per line) for: {query}",
        "images": "Give me 3 royalty-free images (format: url - short description, one per line) for: {query}",
        "keywords": "Give me 3 relevant keywords (comma separated, 15 characters max each) for: {query}",
    },
}


def detect_language(query: str) -> str:
    """
    Guess whether a question is French or English.

    Diacritics count double since English questions almost never carry them.

    Args:
        query: The user's question.

    Returns:
        "fr" or "en".
    """
    words = [w.lower() for w in _WORD.findall(query)]
    french = sum(1 for w in words if w in _FRENCH_WORDS or w.startswith(("qu'", "l'", "d'")))
    english = sum(1 for w in words if w in _ENGLISH_WORDS)
    french += 2 * len(_FRENCH_DIACRITICS.findall(query))
    return ENGLISH if english > french else FRENCH


def build_prompts(query: str, language: Optional[str] = None) -> Dict[str, str]:
    """
    Build the prompt of every field for one question.

    Args:
        query: The user's question.
        language: "fr" or "en". Detected from the question when omitted.

    Returns:
        Dict mapping field name to prompt text, in dispatch order.
    """
    language = language or detect_language(query)
    if language not in PROMPTS:
        raise ValidationError(f"Unsupported language: {language}")
    query = query.strip()
    return {field: template.format(query=query) for field, template in PROMPTS[language].items()}


def build_prompt(query: str, field: str, language: Optional[str] = None) -> str:
    prompts = build_prompts(query, language)
    if field not in prompts:
        raise ValidationError(f"Unknown field: {field}")
    return prompts[field]
