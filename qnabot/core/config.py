"""
Client configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and the
immutable settings a QnAClient is built from. Keeps the rest of the SDK
decoupled from how config is sourced.
"""

import os
from enum import Enum

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

# Public host of the subscription-key generation of the service
DEFAULT_HOST_URL: str = "https://westus.api.cognitive.microsoft.com/qnamaker/v2.0"

# Path appended to the host; {kb_id} is the trimmed knowledge base id
GENERATE_ANSWER_PATH: str = "/knowledgebases/{kb_id}/generateAnswer"

# API timeout (seconds)
API_TIMEOUT: float = 30.0


class AuthMode(str, Enum):
    """Which header carries the credential."""

    SUBSCRIPTION_KEY = "subscription_key"
    ENDPOINT_KEY = "endpoint_key"


class TransportOptions(BaseModel):
    """Settings handed to the httpx client that executes requests."""

    timeout: float = Field(API_TIMEOUT, gt=0, description="Request timeout in seconds.")
    verify: bool = Field(True, description="Verify TLS certificates.")
    follow_redirects: bool = Field(False, description="Follow HTTP redirects.")
    extra_headers: dict[str, str] = Field(
        default_factory=dict,
        description="Additional headers. Protocol headers (auth, content type, cache) always win.",
    )

    model_config = {"frozen": True}


class QnAConfig(BaseModel):
    """Immutable settings for one client instance."""

    host_url: str = Field(DEFAULT_HOST_URL, description="Service host, e.g. https://<name>.azurewebsites.net/qnamaker")
    knowledgebase_id: str = Field(..., description="Knowledge base id; surrounding whitespace is dropped.")
    credential: str | None = Field(None, description="Subscription key or endpoint key, depending on auth_mode.")
    auth_mode: AuthMode = AuthMode.ENDPOINT_KEY
    transport: TransportOptions = Field(default_factory=TransportOptions)
    strip_markup: bool = Field(False, description="Render answer HTML to plain text instead of only decoding entities.")

    model_config = {"frozen": True}

    @field_validator("knowledgebase_id")
    @classmethod
    def _trim_kb_id(cls, value: str) -> str:
        return value.strip()


def _auth_mode_from_env(endpoint_key: str, subscription_key: str) -> AuthMode:
    raw = os.getenv("QNA_AUTH_MODE", "").strip().lower()
    if raw:
        try:
            return AuthMode(raw)
        except ValueError:
            raise ValueError(
                f"QNA_AUTH_MODE must be one of {[m.value for m in AuthMode]}, got {raw!r}"
            ) from None
    if endpoint_key:
        return AuthMode.ENDPOINT_KEY
    if subscription_key:
        return AuthMode.SUBSCRIPTION_KEY
    return AuthMode.ENDPOINT_KEY


def _timeout_from_env() -> float:
    raw = os.getenv("QNA_TIMEOUT", "").strip()
    if not raw:
        return API_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"QNA_TIMEOUT must be a number of seconds, got {raw!r}") from None


def load_config() -> QnAConfig:
    """
    Build a QnAConfig from QNA_* environment variables (and .env).

    QNA_AUTH_MODE picks the header explicitly; when unset, an endpoint key wins
    over a subscription key. Raises ValueError on unparsable values.
    """
    endpoint_key = os.getenv("QNA_ENDPOINT_KEY", "").strip()
    subscription_key = os.getenv("QNA_SUBSCRIPTION_KEY", "").strip()
    auth_mode = _auth_mode_from_env(endpoint_key, subscription_key)
    credential = endpoint_key if auth_mode is AuthMode.ENDPOINT_KEY else subscription_key
    return QnAConfig(
        host_url=os.getenv("QNA_HOST_URL", "").strip() or DEFAULT_HOST_URL,
        knowledgebase_id=os.getenv("QNA_KNOWLEDGEBASE_ID", ""),
        credential=credential or None,
        auth_mode=auth_mode,
        transport=TransportOptions(timeout=_timeout_from_env()),
    )
