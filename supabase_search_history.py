"""
Supabase-based search history for Second Brain.
Provides functionality to create, fill in field by field, list and delete a user's searches.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from errors import PersistenceError
from models import FieldResult, serialize_value

TABLE = "search_history"
COLUMNS = "id, created_at, query, title, summary, historical_context, anecdote, exposition, sources, images, keywords, model_info"
MAX_PAGE_SIZE = 50


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SupabaseSearchHistory:
    """Manages the search history of one user in the search_history table.

    This class provides methods to:
    - Create the history entry of a new search
    - Upsert one field of an entry as soon as it is retrieved
    - List (paginated, optionally filtered on the query text), read and delete entries

    Every method raises PersistenceError when Supabase fails; deciding whether that matters is up to
    the caller.
    """

    def __init__(self, client: Any, user_id: str):
        """Initialize search history manager.

        Args:
            client: A supabase Client (server or user-authenticated)
            user_id: The ID (UUID string) of the user whose history to manage
        """
        self.client = client
        self.user_id = user_id

    def create_entry(self, query: str, history_id: Optional[str] = None) -> str:
        """Create the history row of a new search, before any field is retrieved.

        Args:
            query: The submitted question
            history_id: Optional id to use, generated if not provided

        Returns:
            The id of the new entry
        """
        entry = {
            'id': history_id or str(uuid.uuid4()),
            'user_id': self.user_id,
            'query': query,
            'created_at': _now(),
        }
        try:
            result = self.client.table(TABLE).insert(entry).execute()
        except Exception as e:
            raise PersistenceError(f"Error creating search history entry: {e}") from e
        if not result.data:
            raise PersistenceError("No data returned after creating search history entry")
        return result.data[0].get('id', entry['id'])

    def save_field(self, history_id: str, query: str, field: str, value: Any,
                   model_info: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Write one field of an entry, creating the entry if it does not exist yet.

        Only the given field (and model_info) is set; the other field columns are left untouched.

        Args:
            history_id: The entry id
            query: The entry's question, needed when the upsert ends up inserting
            field: Column name of the field
            value: Parsed value, dataclasses are converted to JSON
            model_info: Metadata about the model that produced the entry

        Returns:
            The stored row
        """
        row = {
            'id': history_id,
            'user_id': self.user_id,
            'query': query,
            field: serialize_value(value),
        }
        if model_info is not None:
            row['model_info'] = model_info
        try:
            result = self.client.table(TABLE).upsert(row, on_conflict='id').execute()
        except Exception as e:
            raise PersistenceError(f"Error saving field {field} of entry {history_id}: {e}") from e
        if not result.data:
            raise PersistenceError(f"No data returned after saving field {field} of entry {history_id}")
        return result.data[0]

    def list_entries(self, page: int = 1, limit: int = 10, search: Optional[str] = None) -> Tuple[List[Dict[str, Any]], int]:
        """Retrieve one page of history, newest first.

        Args:
            page: 1-based page number
            limit: Entries per page, capped to MAX_PAGE_SIZE
            search: Optional text the query must contain (case-insensitive)

        Returns:
            The rows of the page and the total number of matching entries
        """
        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = (page - 1) * limit
        try:
            query = self.client.table(TABLE)\
                .select(COLUMNS, count='exact')\
                .eq('user_id', self.user_id)
            if search:
                query = query.ilike('query', f"%{search}%")
            result = query.order('created_at', desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Error retrieving search history: {e}") from e
        total = result.count if result.count is not None else len(result.data)
        return result.data, total

    def get_entry(self, history_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.client.table(TABLE)\
                .select(COLUMNS)\
                .eq('id', history_id)\
                .eq('user_id', self.user_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Error loading search history entry {history_id}: {e}") from e
        return result.data[0] if result.data else None

    def delete_entry(self, history_id: str) -> None:
        try:
            self.client.table(TABLE)\
                .delete()\
                .eq('id', history_id)\
                .eq('user_id', self.user_id)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Error deleting search history entry {history_id}: {e}") from e

    def clear(self) -> None:
        """Delete the whole history of this user."""
        try:
            self.client.table(TABLE)\
                .delete()\
                .eq('user_id', self.user_id)\
                .execute()
        except Exception as e:
            raise PersistenceError(f"Error clearing search history: {e}") from e

    @staticmethod
    def pagination(total: int, page: int, limit: int) -> Dict[str, int]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        return {
            'total': total,
            'page': max(1, page),
            'limit': limit,
            'pages': math.ceil(total / limit) if total else 0,
        }


class HistoryWriter:
    """
    Result sink for one search: upserts each successfully retrieved field into the search's history entry.

    Saving is best effort. A Supabase failure is printed and swallowed so the search itself goes on.
    """

    def __init__(self, history: SupabaseSearchHistory, history_id: str, query: str,
                 model_name: str, is_free: bool, debug: bool = False):
        self.history = history
        self.history_id = history_id
        self.query = query
        self.debug = debug
        self.model_info: Dict[str, Any] = {
            'name': model_name,
            'is_free': is_free,
            'fields': {},
        }
        self.saved_fields: List[str] = []

    def write(self, result: FieldResult) -> bool:
        """Save one field.

        Args:
            result: The field's outcome, failed fields are skipped

        Returns:
            True if the field was saved, False otherwise
        """
        if not result.ok:
            return False
        timestamp = _now()
        self.model_info['fields'][result.field] = timestamp
        self.model_info['updated_at'] = timestamp
        try:
            self.history.save_field(self.history_id, self.query, result.field, result.value, dict(self.model_info))
        except PersistenceError as e:
            print(f"[History] {e}")
            return False
        self.saved_fields.append(result.field)
        if self.debug:
            print(f"[History] field \"{result.field}\" saved to entry {self.history_id}")
        return True
