"""
Roster Client

Reads the member roster from a Google Sheet through the Sheets API v4
``values.get`` endpoint and keeps a TTL-cached snapshot of the parsed rows.

Sheet layout (first row is a header):
    A: full name | B: national id | C: student number | D: phone | E: department | F: date

Transport errors and 5xx responses are retried with linear backoff. Every failure
surfaces as RosterUnavailableError.
"""

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import quote

import httpx

from app.core.config import Settings
from app.modules.roster.schemas import RosterRecord

logger = logging.getLogger(__name__)

SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"

_SPREADSHEET_URL_PATTERN = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")


class RosterUnavailableError(Exception):
    """Raised when the roster cannot be loaded."""


class _RetryableRosterError(RosterUnavailableError):
    pass


@dataclass
class RosterSnapshot:
    """Parsed roster rows keyed by normalised student number."""

    records: dict[str, RosterRecord] = field(default_factory=dict)
    skipped_rows: int = 0
    fetched_at: float = 0.0

    def __len__(self) -> int:
        return len(self.records)


def extract_spreadsheet_id(value: str) -> str:
    """Accept either a bare spreadsheet id or a full sheet URL."""
    match = _SPREADSHEET_URL_PATTERN.search(value)
    return match.group(1) if match else value.strip()


def normalize_student_number(value: str | None) -> str:
    return re.sub(r"\s+", "", value or "")


def _cell(row: list, index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    return str(row[index]).strip()


def parse_rows(values: list[list]) -> RosterSnapshot:
    """
    Convert raw sheet values into a snapshot.

    The header row is skipped. Rows without a full name or student number are
    dropped and counted. Later duplicates of a student number replace earlier ones.
    """
    snapshot = RosterSnapshot()

    for row in values[1:]:
        full_name = _cell(row, 0)
        student_number = normalize_student_number(_cell(row, 2))
        if not full_name or not student_number:
            snapshot.skipped_rows += 1
            continue

        snapshot.records[student_number] = RosterRecord(
            full_name=full_name,
            national_id=_cell(row, 1) or None,
            student_number=student_number,
            phone=_cell(row, 3) or None,
            department=_cell(row, 4) or None,
            registered_on=_cell(row, 5) or None,
        )

    return snapshot


class RosterClient:
    """Fetches and caches the member roster."""

    def __init__(
        self,
        spreadsheet_id: str,
        api_key: str,
        range_: str = "A:Z",
        *,
        cache_ttl_seconds: float = 300,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 1.0,
        timeout_seconds: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.spreadsheet_id = extract_spreadsheet_id(spreadsheet_id) if spreadsheet_id else ""
        self.api_key = api_key
        self.range = range_
        self.cache_ttl_seconds = cache_ttl_seconds
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay_seconds = retry_delay_seconds
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self._clock = clock
        self._snapshot: RosterSnapshot | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> "RosterClient":
        return cls(
            settings.roster_spreadsheet_id,
            settings.roster_api_key,
            settings.roster_range,
            cache_ttl_seconds=settings.roster_cache_ttl_seconds,
            retry_attempts=settings.roster_retry_attempts,
            retry_delay_seconds=settings.roster_retry_delay_seconds,
            timeout_seconds=settings.roster_request_timeout_seconds,
            http_client=http_client,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.spreadsheet_id and self.api_key)

    def _is_fresh(self) -> bool:
        return (
            self._snapshot is not None
            and self._clock() - self._snapshot.fetched_at < self.cache_ttl_seconds
        )

    async def get_snapshot(self) -> RosterSnapshot:
        """Return the cached snapshot, reloading it when older than the TTL."""
        if self._is_fresh():
            return self._snapshot

        async with self._lock:
            # Another task may have refreshed while this one waited
            if self._is_fresh():
                return self._snapshot
            return await self._load()

    async def refresh(self) -> RosterSnapshot:
        """Reload the roster regardless of cache age."""
        async with self._lock:
            return await self._load()

    async def _load(self) -> RosterSnapshot:
        values = await self._fetch_values()
        snapshot = parse_rows(values)
        snapshot.fetched_at = self._clock()
        self._snapshot = snapshot

        logger.info(
            f"Roster loaded: {len(snapshot)} members, {snapshot.skipped_rows} rows skipped"
        )
        return snapshot

    async def _fetch_values(self) -> list[list]:
        if not self.is_configured:
            raise RosterUnavailableError("Roster spreadsheet is not configured")

        url = f"{SHEETS_API_URL}/{self.spreadsheet_id}/values/{quote(self.range, safe='')}"
        last_error: Exception | None = None

        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await self._request(url)
            except _RetryableRosterError as e:
                last_error = e
                logger.warning(
                    f"Roster fetch attempt {attempt}/{self.retry_attempts} failed: {e}"
                )
                if attempt < self.retry_attempts:
                    await asyncio.sleep(self.retry_delay_seconds * attempt)

        raise RosterUnavailableError(
            f"Roster unavailable after {self.retry_attempts} attempts: {last_error}"
        )

    async def _request(self, url: str) -> list[list]:
        try:
            response = await self._http.get(url, params={"key": self.api_key})
        except httpx.TransportError as e:
            raise _RetryableRosterError(f"transport error: {e}") from e

        if response.status_code >= 500:
            raise _RetryableRosterError(f"HTTP {response.status_code}")
        if response.status_code >= 400:
            raise RosterUnavailableError(f"Roster request rejected with HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise RosterUnavailableError("Roster response is not valid JSON") from e

        values = payload.get("values", []) if isinstance(payload, dict) else None
        if not isinstance(values, list):
            raise RosterUnavailableError("Roster response has no values list")
        return values

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
