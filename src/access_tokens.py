"""Domain operations for authorization (access token) records."""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

from connection import redact_url, send
from errors import DecodeError
from logger import get_logger
from responses import interpret

log = get_logger(__name__)

ACCESS_TOKENS_VIEW = "/_design/views/_view/findAuthorizationByAccessToken"
BULK_DOCS = "/_bulk_docs"

LISTING_ERROR = "Error retrieving access tokens from database: "
WRITE_ERROR = "Error deleting access tokens from database: "

JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}


@dataclass
class DeletionBatch:
    records: list[dict] = field(default_factory=list)
    total_scanned: int = 0

    @property
    def selected(self) -> int:
        return len(self.records)


@dataclass
class RunOptions:
    """Context for one sweep; not reused across runs."""

    couch_db_url: str
    delete_all: bool = False
    timeout: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None
    batch: DeletionBatch = field(default_factory=DeletionBatch)

    @property
    def access_tokens_url(self) -> str:
        return self.couch_db_url + ACCESS_TOKENS_VIEW

    @property
    def bulk_docs_url(self) -> str:
        return self.couch_db_url + BULK_DOCS


def init_options(couch_db_url: str, delete_all: bool = False, transport=None) -> RunOptions:
    try:
        timeout = float(os.environ.get("COUCHDB_TIMEOUT", "30"))
    except ValueError:
        timeout = 30.0
    options = RunOptions(
        couch_db_url=couch_db_url.rstrip("/"),
        delete_all=delete_all,
        timeout=timeout,
        transport=transport,
    )
    log.info(f"COUCHDB_URL: '{redact_url(options.couch_db_url)}'")
    return options


# ---------------------------------------------------------------------------
# Expiration filter
# ---------------------------------------------------------------------------

def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def parse_expiry(record: dict) -> datetime:
    value = record.get("timestampExpires")
    if not isinstance(value, str):
        raise DecodeError(f"access token {record.get('_id')!r} has no timestampExpires")
    try:
        expires = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise DecodeError(f"access token {record.get('_id')!r} has malformed timestampExpires {value!r}") from e
    return _as_utc(expires)


def filter_expired(listing, now: datetime | None = None, delete_all: bool = False) -> tuple[list[dict], int]:
    """Select expired access tokens from a raw view listing.

    Returns ``(selected, total_scanned)``. A token expiring exactly at
    ``now`` is not selected. With ``delete_all`` every token is selected and
    expiration timestamps are not read.
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    try:
        tokens = json.loads(listing)
    except ValueError as e:
        raise DecodeError(f"malformed listing: {e}") from e
    if not isinstance(tokens, dict):
        raise DecodeError("malformed listing: expected a JSON object")

    selected: list[dict] = []
    total = 0
    rows = tokens.get("rows") or []
    if not isinstance(rows, list):
        raise DecodeError("malformed listing: rows is not a list")
    for row in rows:
        try:
            token = row["value"]["authorization"]
        except (KeyError, TypeError) as e:
            raise DecodeError(f"listing row without value.authorization: {row!r}") from e
        if not isinstance(token, dict):
            raise DecodeError(f"listing row authorization is not an object: {row!r}")
        if delete_all or now > parse_expiry(token):
            selected.append(token)
        total += 1
    return selected, total


async def retrieve_expired(client: httpx.AsyncClient, options: RunOptions, now: datetime | None = None) -> list[dict]:
    if options.delete_all:
        log.info("Deleting all access tokens...")
    else:
        log.info("Filtering for expired access tokens...")

    response = await send(
        client,
        options.access_tokens_url,
        "GET",
        headers={"Accept": "application/json"},
        error_msg=LISTING_ERROR,
    )
    try:
        selected, total = interpret(
            response,
            lambda body: filter_expired(body, now, options.delete_all),
            LISTING_ERROR,
        )
    except DecodeError as e:
        raise DecodeError(LISTING_ERROR + str(e)) from e

    options.batch = DeletionBatch(records=selected, total_scanned=total)
    return selected


# ---------------------------------------------------------------------------
# Deletion marker and bulk writer
# ---------------------------------------------------------------------------

def mark_for_deletion(records: list[dict]) -> list[dict]:
    for record in records:
        record["_deleted"] = True
    return records


def bulk_payload(records: list[dict]) -> bytes:
    return json.dumps({"docs": records}, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _decode_write_results(body: bytes) -> list:
    try:
        results = json.loads(body)
    except ValueError as e:
        raise DecodeError(f"malformed bulk write response: {e}") from e
    if not isinstance(results, list):
        raise DecodeError("malformed bulk write response: expected a JSON list")
    return results


async def flush(client: httpx.AsyncClient, options: RunOptions) -> tuple[int, int]:
    """Bulk-delete the batch gathered by ``retrieve_expired``.

    Returns ``(deleted, scanned)``.
    """
    records = mark_for_deletion(options.batch.records)
    payload = bulk_payload(records)
    headers = {**JSON_HEADERS, "Content-Length": str(len(payload))}

    response = await send(
        client,
        options.bulk_docs_url,
        "POST",
        body=payload,
        headers=headers,
        error_msg=WRITE_ERROR,
    )
    try:
        results = interpret(response, _decode_write_results, WRITE_ERROR)
    except DecodeError as e:
        raise DecodeError(WRITE_ERROR + str(e)) from e

    for result in results:
        if isinstance(result, dict) and result.get("error"):
            log.warning(
                f"Access token {result.get('id')!r} not deleted: {result['error']}",
                extra={"extra": {"reason": result.get("reason")}},
            )

    deleted, scanned = options.batch.selected, options.batch.total_scanned
    log.info(f"Deleted {deleted} of {scanned} access tokens.")
    return deleted, scanned
