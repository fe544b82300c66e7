"""Persistence adapters for the serialized task collection."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """A storage backend failed to read or write the collection."""


class TaskStorage(Protocol):
    """Durable key-value slot holding one serialized task collection."""

    def load(self) -> str | None:
        """Return the stored payload, or None when nothing has been saved."""
        ...

    def save(self, payload: str) -> None:
        """Replace the stored payload. Raises PersistenceError on failure."""
        ...


class MemoryStorage:
    """Keeps the payload in process memory."""

    def __init__(self, payload: str | None = None) -> None:
        self.payload = payload
        self.saves = 0

    def load(self) -> str | None:
        return self.payload

    def save(self, payload: str) -> None:
        self.payload = payload
        self.saves += 1


class JsonFileStorage:
    """Stores the collection as a JSON file on local disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> str | None:
        if not self.path.is_file():
            return None
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e

    def save(self, payload: str) -> None:
        # Write beside the target and swap, so readers never see a partial file
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e
        logger.debug("Saved %d bytes to %s", len(payload), self.path)


class HttpStorage:
    """Stores the collection as a JSON document behind an HTTP URL.

    The endpoint is a plain key-value document: GET returns the stored body
    (404 when nothing has been saved) and PUT replaces it. There is no merge
    or conflict detection, so only one client may write to a URL.
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if client is None:
            client = httpx.Client(timeout=30.0)
        self._client = client
        self._headers = headers

    def load(self) -> str | None:
        try:
            resp = self._client.get(self.url, headers=self._headers)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PersistenceError(f"Could not load tasks from {self.url}: {e}") from e
        return resp.text

    def save(self, payload: str) -> None:
        try:
            resp = self._client.put(
                self.url, content=payload.encode("utf-8"), headers=self._headers
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PersistenceError(f"Could not save tasks to {self.url}: {e}") from e
        logger.debug("Saved %d bytes to %s", len(payload), self.url)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()
