"""
Shared pytest fixtures: an in-memory stand-in for the supabase-py query builder, a scripted
completion client and a sleep that only records.
"""

import copy
import uuid
from typing import Any, Callable, Dict, List, Optional

import pytest

from config import Settings
from errors import RateLimited, UpstreamError
from prompts import PROMPTS

QUESTION = "Qu'est-ce que la révolution industrielle ?"

NOMINAL_ANSWERS: Dict[str, str] = {
    "title": "**La révolution industrielle : l'ère des machines**",
    "summary": (
        "La révolution industrielle (XVIIIe-XIXe siècles) transforme l'économie.\n"
        "Elle mécanise la production.\nElle bouleverse la société."
    ),
    "historical_context": "1769 : machine à vapeur de Watt\n1830 : premier chemin de fer\n1870 : seconde révolution",
    "anecdote": "Les luddites brisaient les métiers à tisser (1811) pour protester contre les machines.",
    "exposition": (
        "Introduction (3 lignes max) :\nLa révolution industrielle change le monde.\n\n"
        "Paragraphe 1 - Approche Philosophique\nLe progrès technique interroge la place de l'homme.\n\n"
        "Paragraphe 2 - Analyse Critique\nLes conditions ouvrières se dégradent.\n\n"
        "Paragraphe 3 - Perspective Contemporaine\nLa transition écologique en hérite.\n\n"
        "Conclusion\nUne rupture majeure."
    ),
    "sources": (
        "1. https://fr.wikipedia.org/wiki/Révolution_industrielle - Révolution industrielle (Wikipédia)\n"
        "2. https://www.britannica.com/event/Industrial-Revolution - Industrial Revolution\n"
        "3. https://www.larousse.fr/encyclopedie/divers/révolution_industrielle/61017 - Larousse"
    ),
    "images": (
        "1. https://upload.wikimedia.org/a.jpg - Machine à vapeur\n"
        "2. https://upload.wikimedia.org/b.jpg - Usine textile\n"
        "3. https://upload.wikimedia.org/c.jpg - Locomotive"
    ),
    "keywords": "industrie, vapeur, urbanisation",
}


def field_of_prompt(prompt: str) -> str:
    for templates in PROMPTS.values():
        for field, template in templates.items():
            if prompt.startswith(template.split("{query}")[0]):
                return field
    raise AssertionError(f"unrecognised prompt: {prompt}")


class ScriptedLLM:
    """
    Answers prompts per field. An answer is a string, an exception to raise, or a list of those
    consumed one call at a time.
    """

    def __init__(self, answers: Optional[Dict[str, Any]] = None,
                 on_call: Optional[Callable[[str], None]] = None):
        self.answers = dict(NOMINAL_ANSWERS)
        self.answers.update(answers or {})
        self.calls: List[str] = []
        self.models: List[Optional[str]] = []
        self.on_call = on_call

    def complete(self, prompt: str, model: Optional[str] = None) -> str:
        field = field_of_prompt(prompt)
        self.calls.append(field)
        self.models.append(model)
        if self.on_call is not None:
            self.on_call(field)
        answer = self.answers[field]
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]], count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.payload: Any = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.count_mode: Optional[str] = None
        self.order_by: Optional[tuple] = None
        self.bounds: Optional[tuple] = None
        self.max_rows: Optional[int] = None
        self.conflict_key = "id"

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self.operation, self.count_mode = "select", count
        return self

    def insert(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.operation, self.payload = "insert", payload
        return self

    def upsert(self, payload: Dict[str, Any], on_conflict: str = "id") -> "FakeQuery":
        self.operation, self.payload, self.conflict_key = "upsert", payload, on_conflict
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.operation, self.payload = "update", payload
        return self

    def delete(self) -> "FakeQuery":
        self.operation = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def lt(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) is not None and row[column] < value)
        return self

    def ilike(self, column: str, pattern: str) -> "FakeQuery":
        needle = pattern.strip("%").lower()
        self.filters.append(lambda row: needle in (row.get(column) or "").lower())
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self.bounds = (start, end)
        return self

    def limit(self, size: int) -> "FakeQuery":
        self.max_rows = size
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self.db.tables.setdefault(self.table, []) if all(f(row) for f in self.filters)]

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table, self.operation, copy.deepcopy(self.payload)))
        if (self.table, self.operation) in self.db.failures:
            raise RuntimeError(f"{self.table} {self.operation} failed")
        rows = self.db.tables.setdefault(self.table, [])

        if self.operation == "insert":
            row = copy.deepcopy(self.payload)
            row.setdefault("id", str(uuid.uuid4()))
            rows.append(row)
            return FakeResponse([copy.deepcopy(row)])

        if self.operation == "upsert":
            key = self.payload[self.conflict_key]
            existing = next((r for r in rows if r.get(self.conflict_key) == key), None)
            if existing is None:
                existing = {}
                rows.append(existing)
            existing.update(copy.deepcopy(self.payload))
            return FakeResponse([copy.deepcopy(existing)])

        matching = self._matching()
        if self.operation == "update":
            for row in matching:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matching))

        if self.operation == "delete":
            self.db.tables[self.table] = [row for row in rows if row not in matching]
            return FakeResponse(copy.deepcopy(matching))

        total = len(matching)
        if self.order_by:
            column, desc = self.order_by
            matching = sorted(matching, key=lambda row: row.get(column) or "", reverse=desc)
        if self.bounds:
            matching = matching[self.bounds[0]:self.bounds[1] + 1]
        if self.max_rows is not None:
            matching = matching[:self.max_rows]
        return FakeResponse(copy.deepcopy(matching), total if self.count_mode else None)


class FakeSupabase:
    """Enough of supabase.Client.table(...) for the queries this project issues."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.failures = set()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail(self, table: str, operation: str) -> None:
        self.failures.add((table, operation))


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        mistral_api_key="test-key",
        supabase_url="https://example.supabase.co",
        supabase_anon_key="anon-key",
        supabase_jwt_secret="test-jwt-secret-with-enough-length-for-hs256",
        mistral_model="mistral-large-latest",
    )


@pytest.fixture
def db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


def rate_limited() -> RateLimited:
    return RateLimited("Mistral AI rate limit reached (429)")


def upstream_error(status: int = 500) -> UpstreamError:
    return UpstreamError(f"Mistral AI error ({status})", upstream_status=status)
