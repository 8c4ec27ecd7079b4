"""Shared CouchDB HTTP client, request transport, and JSON output helpers.

``dump`` writes results to stdout; ``dump_error`` writes to stderr.
"""

import json
import os
import ssl
import sys
from urllib.parse import urlsplit

import certifi
import httpx

from errors import TransportError
from logger import get_logger

log = get_logger(__name__)


def get_client(options) -> httpx.AsyncClient:
    kwargs: dict = {"timeout": options.timeout}

    ca = os.environ.get("COUCHDB_TLS_CA_FILE")
    cert = os.environ.get("COUCHDB_TLS_CERT_KEY_FILE")
    allow_invalid = os.environ.get("COUCHDB_TLS_ALLOW_INVALID_CERTS", "false").lower() == "true"

    if options.couch_db_url.startswith("https") and not ca:
        ca = certifi.where()

    if allow_invalid:
        kwargs["verify"] = False
    elif ca or cert:
        ctx = ssl.create_default_context(cafile=ca)
        if cert:
            ctx.load_cert_chain(cert)
        kwargs["verify"] = ctx

    if options.transport is not None:
        kwargs["transport"] = options.transport

    # Basic auth comes from the user-info part of the store URL.
    return httpx.AsyncClient(**kwargs)


async def send(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    body: bytes | None = None,
    headers: dict | None = None,
    error_msg: str = "",
) -> httpx.Response:
    """Issue one request and return the response with its body read.

    Connection-level failures become ``TransportError`` prefixed with
    ``error_msg``; they are never retried.
    """
    try:
        return await client.request(method, url, content=body, headers=headers)
    except httpx.TransportError as e:
        cause = str(e) or e.__class__.__name__
        log.error(error_msg + cause)
        raise TransportError(error_msg + cause) from e


def redact_url(url: str) -> str:
    parts = urlsplit(url)
    port = f":{parts.port}" if parts.port else ""
    return f"{parts.scheme}://{parts.hostname}{port}{parts.path}"


def dump(obj, file=None):
    print(json.dumps(obj, ensure_ascii=False, indent=2), file=file or sys.stdout)


def dump_error(msg: str, **extra):
    dump({"error": msg, **extra}, file=sys.stderr)
