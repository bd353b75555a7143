import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional

from config import Settings
from errors import PersistenceError, ValidationError
from fields import FIELD_ORDER
from LLM import get_model
from models import FieldResult, FieldStatus
from orchestrator import FieldOrchestrator
from prompts import LANGUAGES, detect_language
from rate_limiter import AnonymousCooldown, DailyQuota
from supabase_search_history import HistoryWriter, SupabaseSearchHistory


@dataclass(frozen=True)
class User:
    """An authenticated Supabase user: the token's sub claim and the raw access token."""
    id: str
    token: Optional[str] = None


class SearchSession:
    """
    One submitted question and everything retrieved for it so far.

    A session is created once the question passed validation and the request limits, so fetching its
    fields never counts against the limits again. Fields can be pulled one at a time (fetch_field) or all
    in a row (stream / run_all); either way at most one upstream call runs for the session at a time.
    """

    def __init__(self, query: str, orchestrator: FieldOrchestrator, model: str, language: str, owner: str,
                 writer: Optional[HistoryWriter] = None, remaining: Optional[int] = None,
                 created_at: Optional[float] = None, debug: bool = False):
        self.search_id = str(uuid.uuid4())
        self.query = query
        self.orchestrator = orchestrator
        self.model = model
        self.language = language
        self.owner = owner
        self.writer = writer
        self.remaining = remaining
        self.created_at = created_at if created_at is not None else time.monotonic()
        self.debug = debug
        self.results: Dict[str, FieldResult] = {}
        self._lock = threading.Lock()

    @property
    def history_id(self) -> Optional[str]:
        return self.writer.history_id if self.writer else None

    def _record(self, result: FieldResult) -> None:
        if result.status is not FieldStatus.CANCELLED:
            self.results[result.field] = result

    def fetch_field(self, field: str, cancel_event: Optional[threading.Event] = None) -> FieldResult:
        """
        Retrieve a single field and save it to the history entry, if there is one.

        Args:
            field: One of FIELD_ORDER.
            cancel_event: Abandons the field when set.

        Returns:
            FieldResult: The field's outcome.
        """
        with self._lock:
            result = self.orchestrator.fetch_field(self.query, field, model=self.model, language=self.language,
                                                   cancel_event=cancel_event)
            if self.writer is not None and result.status is not FieldStatus.CANCELLED:
                self.writer.write(result)
            self._record(result)
        return result

    def stream(self, cancel_event: Optional[threading.Event] = None) -> Iterator[FieldResult]:
        """Retrieve every field in order, yielding each one as soon as it is ready."""
        for result in self.orchestrator.run(self.query, FIELD_ORDER, model=self.model, language=self.language,
                                            sink=self.writer, cancel_event=cancel_event):
            self._record(result)
            yield result

    def run_all(self) -> Dict[str, Any]:
        """
        Retrieve every field and return them as one object.

        Returns:
            Dict with query, search_id, history_id, results ({field: value}) and errors ({field: message}).
        """
        results: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for result in self.stream():
            if result.ok:
                results[result.field] = result.to_payload()
            else:
                errors[result.field] = result.error
        return {
            'query': self.query,
            'search_id': self.search_id,
            'history_id': self.history_id,
            'results': results,
            'errors': errors,
        }

    def summary(self) -> Dict[str, Any]:
        completed = [name for name, r in self.results.items() if r.ok]
        failed = [name for name, r in self.results.items() if not r.ok]
        return {'done': True, 'search_id': self.search_id, 'history_id': self.history_id,
                'completed': completed, 'failed': failed}

    def expired(self, now: float, ttl: float) -> bool:
        return now - self.created_at > ttl

    def to_dict(self) -> Dict[str, Any]:
        return {
            'search_id': self.search_id,
            'history_id': self.history_id,
            'query': self.query,
            'model': self.model,
            'language': self.language,
            'fields': list(FIELD_ORDER),
            'remaining': self.remaining,
        }


class SearchService:
    """
    Entry point for starting searches: validation, request limits, history entry creation and the
    registry of live sessions used by per-field requests.
    """

    def __init__(self, settings: Settings, llm: Any, db_factory: Callable[[Optional[str]], Any],
                 cooldown: Optional[AnonymousCooldown] = None, sleep: Optional[Callable[[float], None]] = None,
                 clock: Callable[[], float] = time.monotonic, debug: bool = False):
        """
        Args:
            settings: Process configuration.
            llm: Completion client shared by every search, normally LLM.MistralClient.
            db_factory: Returns a supabase Client for a user access token (None for the server client).
            cooldown: Anonymous cooldown tracker, built from the settings when omitted.
            sleep: Passed to the orchestrators, for tests.
            clock: Monotonic clock used for session expiry.
            debug: Print progress.
        """
        self.settings = settings
        self.llm = llm
        self.db_factory = db_factory
        self.cooldown = cooldown or AnonymousCooldown(settings.request_cooldown_seconds)
        self.sleep = sleep
        self.clock = clock
        self.debug = debug
        self._sessions: Dict[str, SearchSession] = {}
        self._lock = threading.Lock()

    def orchestrator(self) -> FieldOrchestrator:
        return FieldOrchestrator(self.llm, self.settings, sleep=self.sleep, debug=self.debug)

    def quota(self, user: User) -> DailyQuota:
        return DailyQuota(self.db_factory(user.token), self.settings.requests_per_day, debug=self.debug)

    def history(self, user: User) -> SupabaseSearchHistory:
        return SupabaseSearchHistory(self.db_factory(user.token), user.id)

    @staticmethod
    def owner_of(user: Optional[User], client_id: Optional[str]) -> str:
        return f"user:{user.id}" if user else f"anon:{client_id or 'anonymous'}"

    def validate_query(self, query: Optional[str]) -> str:
        """
        Raises:
            ValidationError: If the question is missing or shorter than settings.min_query_length.
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("A question is required")
        if len(query) < self.settings.min_query_length:
            raise ValidationError(f"The question must be at least {self.settings.min_query_length} characters long")
        return query

    def start(self, query: Optional[str], user: Optional[User] = None, client_id: Optional[str] = None,
              model: Optional[str] = None, language: Optional[str] = None) -> SearchSession:
        """
        Validate a question, apply the request limits and open a session for it.

        Authenticated users consume one request of their daily quota and get a history entry created
        right away; anonymous clients go through the cooldown. Persistence failures while counting or
        creating the entry are printed and ignored.

        Args:
            query: The user's question.
            user: The authenticated user, None for anonymous clients.
            client_id: Key identifying an anonymous client.
            model: Model id, the configured default when omitted.
            language: "fr" or "en", detected when omitted.

        Returns:
            SearchSession: The registered session.

        Raises:
            ValidationError: Bad question, model or language.
            QuotaExceeded: The user used up today's quota.
            CooldownActive: The anonymous client searched too recently.
        """
        query = self.validate_query(query)
        info = get_model(model or self.settings.mistral_model)
        if language is not None and language not in LANGUAGES:
            raise ValidationError(f"Unsupported language: {language}")
        language = language or detect_language(query)

        writer = None
        remaining = None
        if user is not None:
            quota = self.quota(user)
            quota.sweep()
            quota.consume(user.id)
            remaining = max(0, quota.limit - quota.count(user.id))

            history = self.history(user)
            history_id = str(uuid.uuid4())
            try:
                history_id = history.create_entry(query, history_id)
            except PersistenceError as e:
                # the first field upsert will create the row instead
                print(f"[Session] {e}")
            writer = HistoryWriter(history, history_id, query, info.name, info.is_free, debug=self.debug)
        else:
            self.cooldown.consume(client_id or "anonymous")

        session = SearchSession(query, self.orchestrator(), info.name, language, self.owner_of(user, client_id),
                                writer=writer, remaining=remaining, created_at=self.clock(), debug=self.debug)
        self._register(session)
        if self.debug:
            print(f"[Session] search {session.search_id} started for {session.owner}: {query}")
        return session

    def _register(self, session: SearchSession) -> None:
        with self._lock:
            now = self.clock()
            ttl = self.settings.search_session_ttl_seconds
            for search_id in [k for k, s in self._sessions.items() if s.expired(now, ttl)]:
                del self._sessions[search_id]
            self._sessions[session.search_id] = session

    def get(self, search_id: str, user: Optional[User] = None, client_id: Optional[str] = None) -> SearchSession:
        """
        Find a live session started by the same user or client.

        Raises:
            ValidationError: Unknown, expired or foreign session.
        """
        with self._lock:
            session = self._sessions.get(search_id)
            if session is not None and session.expired(self.clock(), self.settings.search_session_ttl_seconds):
                del self._sessions[search_id]
                session = None
        if session is None or session.owner != self.owner_of(user, client_id):
            raise ValidationError(f"Unknown or expired search: {search_id}")
        return session

    def finish(self, search_id: str) -> None:
        with self._lock:
            self._sessions.pop(search_id, None)

    def quota_status(self, user: Optional[User], client_id: Optional[str]) -> Dict[str, Any]:
        if user is not None:
            used = self.quota(user).count(user.id)
            limit = self.settings.requests_per_day
            return {'authenticated': True, 'limit': limit, 'used': used, 'remaining': max(0, limit - used)}
        return {
            'authenticated': False,
            'cooldown_seconds': self.settings.request_cooldown_seconds,
            'remaining_seconds': self.cooldown.remaining(client_id or "anonymous"),
        }
