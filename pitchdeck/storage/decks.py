"""Job-record store: one row per deck (id, owner, name, artifact URLs, visibility, status, creation time)."""
import logging
import threading
from typing import Dict, List, Optional, Protocol

import requests
from pydantic import ValidationError

from pitchdeck.core.errors import PersistenceError
from pitchdeck.models.schemas import PitchDeckInfo

logger = logging.getLogger(__name__)


class DeckRepository(Protocol):
    def get(self, deck_id: str) -> Optional[PitchDeckInfo]:
        ...

    def list_by_user(self, user_id: str) -> List[PitchDeckInfo]:
        ...

    def save(self, record: PitchDeckInfo) -> None:
        ...

    def set_visibility(self, deck_id: str, is_public: bool) -> bool:
        ...


class SupabaseDeckRepository:
    """PostgREST table access (/rest/v1/<table>) with the service key.
    Why available: Keeps deck records after the progress channel is gone, so Get/List still see finished jobs."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        table: str = "pitch_decks",
        timeout: Optional[float] = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.service_key = service_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }
        headers.update(extra)
        return headers

    def _request(self, method: str, **kwargs) -> requests.Response:
        try:
            return self._session.request(method, self.endpoint, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise PersistenceError(f"failed to send request: {e}") from e

    def _rows(self, resp: requests.Response) -> List[PitchDeckInfo]:
        if resp.status_code != 200:
            raise PersistenceError(f"record store returned {resp.status_code}: {resp.text[:300]}")
        try:
            return [PitchDeckInfo.model_validate(row) for row in resp.json()]
        except (ValueError, TypeError, ValidationError) as e:
            raise PersistenceError(f"unreadable record store response: {e}") from e

    def get(self, deck_id: str) -> Optional[PitchDeckInfo]:
        resp = self._request("GET", params={"id": f"eq.{deck_id}"}, headers=self._headers())
        # an id the id column cannot hold (e.g. not a uuid) is rejected with 400: no such deck
        if resp.status_code in (400, 404):
            logger.info("deck lookup rejected by record store id=%s status=%s", deck_id, resp.status_code)
            return None
        rows = self._rows(resp)
        return rows[0] if rows else None

    def list_by_user(self, user_id: str) -> List[PitchDeckInfo]:
        resp = self._request(
            "GET",
            params={"user_id": f"eq.{user_id}", "order": "created_at.desc"},
            headers=self._headers(),
        )
        return self._rows(resp)

    def save(self, record: PitchDeckInfo) -> None:
        """Insert or replace the row for record.id."""
        resp = self._request(
            "POST",
            data=record.model_dump_json(),
            headers=self._headers(**{
                "Content-Type": "application/json",
                "Prefer": "resolution=merge-duplicates,return=minimal",
            }),
        )
        if resp.status_code not in (200, 201, 204):
            raise PersistenceError(f"failed to save record: {resp.status_code} {resp.text[:300]}")
        logger.info("deck record saved id=%s status=%s", record.id, record.status)

    def set_visibility(self, deck_id: str, is_public: bool) -> bool:
        resp = self._request(
            "PATCH",
            params={"id": f"eq.{deck_id}"},
            json={"is_public": is_public},
            headers=self._headers(**{"Content-Type": "application/json", "Prefer": "return=representation"}),
        )
        rows = self._rows(resp)
        return bool(rows)


class InMemoryDeckRepository:
    """Process-local record store used when no Supabase project is configured, and by tests."""

    def __init__(self):
        self._records: Dict[str, PitchDeckInfo] = {}
        self._lock = threading.Lock()

    def get(self, deck_id: str) -> Optional[PitchDeckInfo]:
        with self._lock:
            record = self._records.get(deck_id)
            return record.model_copy() if record else None

    def list_by_user(self, user_id: str) -> List[PitchDeckInfo]:
        with self._lock:
            rows = [r.model_copy() for r in self._records.values() if r.user_id == user_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    def save(self, record: PitchDeckInfo) -> None:
        with self._lock:
            self._records[record.id] = record.model_copy()

    def set_visibility(self, deck_id: str, is_public: bool) -> bool:
        with self._lock:
            record = self._records.get(deck_id)
            if record is None:
                return False
            self._records[deck_id] = record.model_copy(update={"is_public": is_public})
            return True
