"""
Sequential retrieval of every field of a question.

Only one upstream call is ever in flight for a question: fields are dispatched in FIELD_ORDER with a pause
between dispatches to stay under the provider's rate limit. A failing field never stops the others.
"""

import random
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Iterator, Optional

from config import Settings
from errors import RateLimited, UpstreamError
from fields import FIELD_ORDER, get_field, is_empty
from models import FieldResult, FieldStatus
from prompts import build_prompt


class FieldOrchestrator:
    """
    Fetches, retries and parses fields one at a time.
    """

    def __init__(self, llm: Any, settings: Settings, sleep: Optional[Callable[[float], None]] = None,
                 debug: bool = False) -> None:
        """
        Args:
            llm: Anything with complete(prompt, model=None) -> str, normally LLM.MistralClient.
            settings: Supplies the inter-field delay, jitter and rate-limit retry policy.
            sleep: Replacement for time.sleep. When omitted and a cancel event is given,
                pauses wait on the event so cancelling wakes them up immediately.
            debug: Print progress.
        """
        self.llm = llm
        self.delay = settings.field_delay_seconds
        self.jitter = settings.field_delay_jitter_seconds
        self.max_attempts = max(1, settings.rate_limit_retries)
        self.backoff = settings.rate_limit_backoff_seconds
        self.sleep = sleep
        self.debug = debug

    def _pause(self, seconds: float, cancel_event: Optional[threading.Event]) -> bool:
        """Wait, returns True if the run was cancelled meanwhile."""
        if seconds > 0:
            if self.sleep is not None:
                self.sleep(seconds)
            elif cancel_event is not None:
                cancel_event.wait(seconds)
            else:
                time.sleep(seconds)
        return cancel_event is not None and cancel_event.is_set()

    def _next_delay(self) -> float:
        return self.delay + (random.uniform(0, self.jitter) if self.jitter > 0 else 0)

    def fetch_field(self, query: str, field: str, model: Optional[str] = None, language: Optional[str] = None,
                    cancel_event: Optional[threading.Event] = None) -> FieldResult:
        """
        Retrieve and parse a single field.

        A 429 from upstream is retried: max_attempts calls in total, waiting backoff * attempt seconds
        after each rate-limited call (2s, 4s, 6s with the defaults). Any other upstream error fails the
        field straight away.

        Args:
            query: The user's question.
            field: One of FIELD_ORDER.
            model: Model id, the client's default when omitted.
            language: Prompt language, detected when omitted.
            cancel_event: When set, the field is abandoned and reported as CANCELLED.

        Returns:
            FieldResult: OK or EMPTY with the parsed value, FAILED or CANCELLED with an error message.

        Raises:
            ValidationError: Unknown field. Nothing is sent upstream.
        """
        spec = get_field(field)
        prompt = build_prompt(query, field, language)
        result = FieldResult(field=field, status=FieldStatus.DISPATCHING)

        while result.attempts < self.max_attempts:
            if cancel_event is not None and cancel_event.is_set():
                result.status, result.error = FieldStatus.CANCELLED, "Search cancelled"
                return result

            result.attempts += 1
            if self.debug:
                print(f"[Orchestrator] request for field \"{field}\" sent (attempt {result.attempts})")
            try:
                content = self.llm.complete(prompt, model=model)
            except RateLimited as e:
                wait = self.backoff * result.attempts
                print(f"[Orchestrator] rate limited on \"{field}\", waiting {wait:.0f}s: {e}")
                result.error = f"Error for {field}: {e.message}"
                if self._pause(wait, cancel_event):
                    result.status, result.error = FieldStatus.CANCELLED, "Search cancelled"
                    return result
                continue
            except UpstreamError as e:
                print(f"[Orchestrator] error for field \"{field}\": {e}")
                result.status, result.error = FieldStatus.FAILED, f"Error for {field}: {e.message}"
                return result

            if cancel_event is not None and cancel_event.is_set():
                # the answer arrived after the caller gave up, drop it
                result.status, result.error = FieldStatus.CANCELLED, "Search cancelled"
                return result

            result.value = spec.parse(content)
            result.status = FieldStatus.EMPTY if is_empty(result.value) else FieldStatus.OK
            result.error = None
            if self.debug:
                print(f"[Orchestrator] field \"{field}\" parsed ({result.status.value})")
            return result

        result.status = FieldStatus.FAILED
        return result

    def run(self, query: str, fields: Iterable[str] = FIELD_ORDER, model: Optional[str] = None,
            language: Optional[str] = None, sink: Optional[Any] = None,
            cancel_event: Optional[threading.Event] = None) -> Iterator[FieldResult]:
        """
        Retrieve fields one after another, yielding each result as soon as it is parsed.

        Every result, failed or not, is handed to sink.write() before being yielded. When cancel_event
        gets set the run stops after reporting the field that was in flight as CANCELLED; results already
        yielded and written stay as they are.

        Args:
            query: The user's question.
            fields: Field names to retrieve, in order.
            model: Model id.
            language: Prompt language.
            sink: Object with write(FieldResult), e.g. supabase_search_history.HistoryWriter.
            cancel_event: Stops the run when set.

        Yields:
            FieldResult: One per field, in the order given.
        """
        fields = list(fields)
        for name in fields:
            get_field(name)
        if self.debug:
            print(f"[Orchestrator] launching {len(fields)} requests for question: {query}")

        for index, name in enumerate(fields):
            if index > 0 and self._pause(self._next_delay(), cancel_event):
                if self.debug:
                    print(f"[Orchestrator] cancelled before \"{name}\"")
                return
            if cancel_event is not None and cancel_event.is_set():
                return

            result = self.fetch_field(query, name, model=model, language=language, cancel_event=cancel_event)
            if sink is not None and result.status is not FieldStatus.CANCELLED:
                sink.write(result)
            yield result
            if result.status is FieldStatus.CANCELLED:
                return

        if self.debug:
            print(f"[Orchestrator] all fields done at {datetime.now().strftime('%H:%M:%S')}")

    def collect(self, query: str, fields: Iterable[str] = FIELD_ORDER, model: Optional[str] = None,
                language: Optional[str] = None, sink: Optional[Any] = None) -> Dict[str, Dict[str, Any]]:
        """
        One-shot variant of run(): retrieve everything, then return a single object.

        Returns:
            {"results": {field: value}, "errors": {field: message}}
        """
        results: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for result in self.run(query, fields, model=model, language=language, sink=sink):
            if result.ok:
                results[result.field] = result.to_payload()
            else:
                errors[result.field] = result.error or f"Error for {result.field}"
        return {"results": results, "errors": errors}
