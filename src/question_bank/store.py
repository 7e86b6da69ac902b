"""
Module: store

Purpose:
    Client for the remote question table, served through a PostgREST-style
    REST endpoint (``/rest/v1/questions``). Handles filtered, paginated
    listing, create/update/delete, bulk insert for CSV imports, the
    candidate query behind the worksheet picker and the per-subject topic
    lookup (``/rest/v1/subject_topics``).

Key Classes:
    - StoreConfig: Endpoint URL and API key (from the environment)
    - QuestionFilter: Filters + page for list queries
    - QuestionPage: One page of results with the exact total count
    - QuestionStore: The HTTP client

Key Functions:
    - describe_http_error(): Map a failed response to a user-facing error

Dependencies:
    - requests: HTTP session
    - question_bank.core.models: QuestionRecord

Used By:
    - question_bank.cli: ``import-csv`` command
"""

from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout

from question_bank.core.models import QuestionRecord, REQUIRED_COLUMNS, SERVER_COLUMNS

logger = logging.getLogger(__name__)

URL_ENV_VAR = "QUESTION_BANK_URL"
KEY_ENV_VAR = "QUESTION_BANK_KEY"

TABLE_PATH = "/rest/v1/questions"
TOPICS_PATH = "/rest/v1/subject_topics"
DEFAULT_PAGE_SIZE = 10
MAX_WORKSHEET_QUESTIONS = 15
DEFAULT_TIMEOUT = 30.0

_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+|\*)\s*$")


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────


class StoreConfigError(Exception):
    """Raised when the store endpoint or key is not configured."""
    pass


class StoreError(Exception):
    """Base error for remote store failures. ``str(e)`` is user-facing."""

    def __init__(self, message: str, *, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class StoreConnectionError(StoreError):
    """The store could not be reached."""
    pass


class StoreAuthenticationError(StoreError):
    """The API key was rejected (HTTP 401)."""
    pass


class StoreRateLimitError(StoreError):
    """Too many requests (HTTP 429)."""
    pass


class InvalidDataError(StoreError):
    """Rejected as an invalid data format (PostgREST code class 22)."""
    pass


class ConstraintViolationError(StoreError):
    """Rejected by a table constraint (PostgREST code class 23)."""
    pass


class RecordValidationError(StoreError):
    """Required fields missing before a write was attempted."""

    def __init__(self, missing: Sequence[str]):
        super().__init__(f"Please fill in all required fields: {', '.join(missing)}")
        self.missing = tuple(missing)


def describe_http_error(response: requests.Response) -> StoreError:
    """
    Build the StoreError for a failed response.

    The PostgREST error body carries a ``code`` (SQLSTATE) and ``message``;
    both are optional.
    """
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    code = str(body.get("code") or "")
    detail = body.get("message") or response.reason or ""

    if status == 401:
        return StoreAuthenticationError(
            "Authentication error: please check your API key", status=status, code=code
        )
    if status == 429:
        return StoreRateLimitError(
            "Too many requests: please wait a moment and try again", status=status, code=code
        )
    if code.startswith("22"):
        return InvalidDataError(f"Invalid data format: {detail}", status=status, code=code)
    if code.startswith("23"):
        return ConstraintViolationError(
            f"Database constraint violation: {detail}", status=status, code=code
        )
    return StoreError(f"An unexpected error occurred: {detail or status}", status=status, code=code)


def missing_required_fields(fields: Mapping[str, Any]) -> List[str]:
    """Required columns that are absent or blank in ``fields``."""
    missing = []
    for name in REQUIRED_COLUMNS:
        value = fields.get(name)
        if value is None or not str(value).strip():
            missing.append(name)
    return missing


# ─────────────────────────────────────────────────────────────────────────────
# Query models
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StoreConfig:
    """Endpoint and key for the remote store."""

    url: str
    api_key: str
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.url or not self.api_key:
            raise StoreConfigError("Store URL and API key are both required")
        if self.timeout <= 0:
            raise StoreConfigError(f"timeout must be positive: {self.timeout}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> StoreConfig:
        """
        Read the configuration from ``QUESTION_BANK_URL`` / ``QUESTION_BANK_KEY``.

        Raises:
            StoreConfigError: If either variable is missing or empty
        """
        environ = os.environ if environ is None else environ
        url = environ.get(URL_ENV_VAR, "").strip()
        key = environ.get(KEY_ENV_VAR, "").strip()
        missing = [name for name, value in ((URL_ENV_VAR, url), (KEY_ENV_VAR, key)) if not value]
        if missing:
            raise StoreConfigError(f"Missing environment variables: {', '.join(missing)}")
        return cls(url=url.rstrip("/"), api_key=key)

    @property
    def table_url(self) -> str:
        return self.url_for(TABLE_PATH)

    def url_for(self, path: str) -> str:
        return f"{self.url.rstrip('/')}{path}"


@dataclass(frozen=True)
class QuestionFilter:
    """
    Filters and page for a list query.

    Attributes:
        subject: Exact subject match
        level: Exact level match
        title: Case-insensitive substring of ``question_title``
        search: Case-insensitive substring of the body or reference code
        page: 1-based page number
        page_size: Rows per page
    """

    subject: Optional[str] = None
    level: Optional[str] = None
    title: Optional[str] = None
    search: Optional[str] = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page is 1-based: {self.page}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be positive: {self.page_size}")

    @property
    def row_range(self) -> tuple[int, int]:
        """Inclusive (first, last) row offsets for the ``Range`` header."""
        first = (self.page - 1) * self.page_size
        return first, first + self.page_size - 1

    def to_params(self) -> List[tuple[str, str]]:
        params: List[tuple[str, str]] = [("select", "*")]
        if self.subject:
            params.append(("subject", f"eq.{self.subject}"))
        if self.level:
            params.append(("level", f"eq.{self.level}"))
        if self.title:
            params.append(("question_title", f"ilike.*{self.title}*"))
        if self.search:
            params.append((
                "or",
                f"(question_body.ilike.*{self.search}*,reference_code.ilike.*{self.search}*)",
            ))
        params.append(("order", "created_at.desc"))
        return params


@dataclass(frozen=True)
class QuestionPage:
    """One page of list results."""

    records: List[QuestionRecord] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.total_count else 0


def parse_total_count(content_range: Optional[str]) -> Optional[int]:
    """Total from a ``Content-Range`` header like ``0-9/42``; None if unknown."""
    if not content_range:
        return None
    match = _CONTENT_RANGE_TOTAL.search(content_range)
    if not match or match.group(1) == "*":
        return None
    return int(match.group(1))


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────


class QuestionStore:
    """
    HTTP client for the question table.

    Example:
        >>> store = QuestionStore(StoreConfig.from_env())
        >>> page = store.list_questions(QuestionFilter(subject="Physics"))
        >>> page.total_pages
        3
    """

    def __init__(self, config: StoreConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": config.api_key,
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> QuestionStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    def list_questions(self, query: Optional[QuestionFilter] = None) -> QuestionPage:
        """
        Fetch one filtered page, newest first, with the exact total count.

        Raises:
            StoreError: On any transport or HTTP failure
        """
        query = query or QuestionFilter()
        first, last = query.row_range
        response = self._request(
            "GET",
            params=query.to_params(),
            headers={"Range-Unit": "items", "Range": f"{first}-{last}", "Prefer": "count=exact"},
        )
        records = [QuestionRecord.from_dict(row) for row in response.json()]
        total = parse_total_count(response.headers.get("Content-Range"))
        if total is None:
            total = first + len(records)
        logger.debug(f"Fetched {len(records)} of {total} questions (page {query.page})")
        return QuestionPage(records=records, total_count=total, page=query.page, page_size=query.page_size)

    def find_candidates(
        self,
        subject: str,
        level: str,
        title: str,
        count: int,
        exclude_ids: Iterable[str] = (),
    ) -> List[QuestionRecord]:
        """
        Pick up to ``count`` questions for a worksheet.

        Args:
            subject: Exact subject match
            level: Exact level match
            title: Case-insensitive substring of the question title
            count: Wanted number of questions, capped at MAX_WORKSHEET_QUESTIONS
            exclude_ids: Ids already accepted into the worksheet

        Returns:
            Matching records, not including any excluded id
        """
        exclude = [str(record_id) for record_id in exclude_ids]
        limit = min(count, MAX_WORKSHEET_QUESTIONS) - len(exclude)
        if limit <= 0:
            return []

        params: List[tuple[str, str]] = [
            ("select", "*"),
            ("subject", f"eq.{subject}"),
            ("level", f"eq.{level}"),
            ("question_title", f"ilike.*{title}*"),
        ]
        if exclude:
            params.append(("id", f"not.in.({','.join(exclude)})"))
        params.append(("limit", str(limit)))

        response = self._request("GET", params=params)
        records = [QuestionRecord.from_dict(row) for row in response.json()]
        logger.info(f"Found {len(records)} candidate questions for {subject} {level} {title}")
        return records

    def topics_for_subject(self, subject: str) -> List[str]:
        """
        Topic labels offered for one subject, from the ``subject_topics`` table.

        Returns:
            Topics in alphabetical order; empty for a blank subject
        """
        if not subject.strip():
            return []
        response = self._request(
            "GET",
            path=TOPICS_PATH,
            params=[("select", "topic"), ("subject", f"eq.{subject}"), ("order", "topic.asc")],
        )
        topics = [row["topic"] for row in response.json() if row.get("topic")]
        logger.debug(f"Fetched {len(topics)} topics for {subject}")
        return topics

    def ping(self) -> bool:
        """Cheap connectivity check: fetch at most one id."""
        try:
            self._request("GET", params=[("select", "id"), ("limit", "1")])
        except StoreError as e:
            logger.warning(f"Store connectivity check failed: {e}")
            return False
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────────

    def create_question(self, fields: Mapping[str, Any]) -> QuestionRecord:
        """
        Insert one question.

        Raises:
            RecordValidationError: If a required field is blank
            StoreError: On any transport or HTTP failure
        """
        payload = self._writable(fields)
        missing = missing_required_fields(payload)
        if missing:
            raise RecordValidationError(missing)
        response = self._request("POST", json=payload, headers={"Prefer": "return=representation"})
        record = QuestionRecord.from_dict(response.json()[0])
        logger.info(f"Created question {record.id}")
        return record

    def update_question(self, record_id: str, fields: Mapping[str, Any]) -> QuestionRecord:
        """
        Replace the editable fields of one question.

        Raises:
            RecordValidationError: If a required field is blank
            StoreError: On any transport or HTTP failure, or if no row matched
        """
        payload = self._writable(fields)
        missing = missing_required_fields(payload)
        if missing:
            raise RecordValidationError(missing)
        response = self._request(
            "PATCH",
            params=[("id", f"eq.{record_id}")],
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        if not rows:
            raise StoreError(f"Question {record_id} no longer exists")
        logger.info(f"Updated question {record_id}")
        return QuestionRecord.from_dict(rows[0])

    def delete_question(self, record_id: str) -> None:
        self._request("DELETE", params=[("id", f"eq.{record_id}")])
        logger.info(f"Deleted question {record_id}")

    def insert_many(self, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Bulk insert (CSV import). All rows go in one request.

        Returns:
            Number of rows sent
        """
        payload = [self._writable(row) for row in rows]
        if not payload:
            return 0
        self._request("POST", json=payload, headers={"Prefer": "return=minimal"})
        logger.info(f"Inserted {len(payload)} questions")
        return len(payload)

    # ─────────────────────────────────────────────────────────────────────────
    # Internal
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    def _writable(fields: Mapping[str, Any]) -> Dict[str, Any]:
        columns = set(QuestionRecord.column_names()) - set(SERVER_COLUMNS)
        return {key: value for key, value in fields.items() if key in columns}

    def _request(
        self,
        method: str,
        *,
        path: str = TABLE_PATH,
        params: Optional[List[tuple[str, str]]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        try:
            response = self.session.request(
                method,
                self.config.url_for(path),
                params=params,
                json=json,
                headers=headers,
                timeout=self.config.timeout,
            )
        except (RequestsConnectionError, Timeout) as e:
            raise StoreConnectionError(
                "Connection error: please check your internet connection"
            ) from e
        except RequestException as e:
            raise StoreError(f"An unexpected error occurred: {e}") from e

        if not response.ok:
            error = describe_http_error(response)
            logger.error(f"{method} {path} failed with HTTP {response.status_code}: {error}")
            raise error
        return response
