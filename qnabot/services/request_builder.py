"""
Request building for the generateAnswer endpoint.

Responsibility: Turn a QnAConfig plus a question into an httpx.Request (URL,
auth headers, JSON body). Nothing here touches the network; failures are
raised as RequestBuildError and mapped to a ServiceError by the client.
"""

import json
import logging

import httpx

from qnabot.core.config import GENERATE_ANSWER_PATH, AuthMode, QnAConfig
from qnabot.core.errors import (
    INVALID_CREDENTIAL_MESSAGE,
    INVALID_HEADER_MESSAGE,
    INVALID_URL_MESSAGE,
    MISSING_CREDENTIAL_MESSAGE,
    SERIALIZATION_MESSAGE,
    ErrorKind,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"
AUTHORIZATION_HEADER = "Authorization"
ENDPOINT_KEY_SCHEME = "EndpointKey"

_PROTOCOL_HEADERS = frozenset(
    h.lower() for h in ("Content-Type", "Cache-Control", SUBSCRIPTION_KEY_HEADER, AUTHORIZATION_HEADER)
)


class RequestBuildError(Exception):
    """Raised when a request cannot be built; carries the ErrorKind to report."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(message)


def build_url_string(host_url: str, knowledgebase_id: str) -> str:
    """Join host and knowledge base id; a trailing slash on the host is tolerated."""
    return host_url.strip().rstrip("/") + GENERATE_ANSWER_PATH.format(kb_id=knowledgebase_id.strip())


def build_url(host_url: str, knowledgebase_id: str) -> httpx.URL:
    """
    Build and validate the endpoint URL.

    Raises RequestBuildError(INVALID_URL) unless the result is an absolute
    http(s) URL with a host.
    """
    raw = build_url_string(host_url, knowledgebase_id)
    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL as e:
        logger.warning("[request_builder:build_url] invalid url %r: %s", raw, e)
        raise RequestBuildError(ErrorKind.INVALID_URL, INVALID_URL_MESSAGE) from e
    if url.scheme not in ("http", "https") or not url.host or any(c.isspace() for c in raw):
        logger.warning("[request_builder:build_url] invalid url %r", raw)
        raise RequestBuildError(ErrorKind.INVALID_URL, INVALID_URL_MESSAGE)
    return url


def _header_safe(value: str) -> bool:
    # headers are latin-1 on the wire; keep to printable ASCII, no CR/LF
    return value.isascii() and value.isprintable()


def build_headers(config: QnAConfig) -> dict[str, str]:
    """
    Protocol headers plus the one auth header selected by config.auth_mode.

    Raises RequestBuildError(MISSING_CREDENTIAL) in endpoint-key mode when the
    key is empty, or when the key holds characters a header cannot carry.
    Unencodable extra headers raise RequestBuildError(SERIALIZATION_FAILURE).
    """
    headers = {
        k: v for k, v in config.transport.extra_headers.items() if k.lower() not in _PROTOCOL_HEADERS
    }
    if not all(_header_safe(k) and _header_safe(v) for k, v in headers.items()):
        raise RequestBuildError(ErrorKind.SERIALIZATION_FAILURE, INVALID_HEADER_MESSAGE)
    headers["Content-Type"] = "application/json"
    headers["Cache-Control"] = "no-cache"
    credential = (config.credential or "").strip()
    if not _header_safe(credential):
        raise RequestBuildError(ErrorKind.MISSING_CREDENTIAL, INVALID_CREDENTIAL_MESSAGE)
    if config.auth_mode is AuthMode.ENDPOINT_KEY:
        if not credential:
            raise RequestBuildError(ErrorKind.MISSING_CREDENTIAL, MISSING_CREDENTIAL_MESSAGE)
        headers[AUTHORIZATION_HEADER] = f"{ENDPOINT_KEY_SCHEME} {credential}"
    else:
        headers[SUBSCRIPTION_KEY_HEADER] = credential
    return headers


def build_body(question: str) -> bytes:
    """Serialize {"question": question} as UTF-8 JSON."""
    if not isinstance(question, str):
        raise RequestBuildError(ErrorKind.SERIALIZATION_FAILURE, SERIALIZATION_MESSAGE)
    try:
        return json.dumps({"question": question}, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError, UnicodeEncodeError) as e:
        # lone surrogates cannot be encoded
        raise RequestBuildError(ErrorKind.SERIALIZATION_FAILURE, SERIALIZATION_MESSAGE) from e


def build_request(config: QnAConfig, question: str) -> httpx.Request:
    """
    Assemble the POST request for one question.

    Checks run URL, then credential, then body; the first failure wins.
    """
    url = build_url(config.host_url, config.knowledgebase_id)
    headers = build_headers(config)
    body = build_body(question)
    logger.info(
        "[request_builder:build_request] OUT url=%s auth_mode=%s body_len=%d",
        url, config.auth_mode.value, len(body),
    )
    try:
        return httpx.Request("POST", url, headers=headers, content=body)
    except (UnicodeEncodeError, ValueError) as e:
        raise RequestBuildError(ErrorKind.SERIALIZATION_FAILURE, INVALID_HEADER_MESSAGE) from e
