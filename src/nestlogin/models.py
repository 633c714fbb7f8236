"""Canonical Pydantic models shared across all nestlogin modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Settings** -- serialised as JSON in the user's config directory:
    :class:`LoginSettings` and :class:`OutputConfig`.

**Network observation** -- the immutable inputs and state of the
interception reducer in :mod:`nestlogin.interception`:
    :class:`Cookie`, :class:`RequestEvent`, :class:`ResponseEvent`,
    :class:`Artifacts`.

**Deliverables and session state**:
    :class:`OAuthDescriptor`, :class:`PkcePair`, :class:`LoginState`,
    :class:`MfaKind`.

All models use Pydantic v2. Network models are frozen so that the reducer
can only ever produce new values.
"""

from __future__ import annotations

import enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Settings ---


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`LoginSettings`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class LoginSettings(BaseModel):
    """User-wide settings persisted at ``~/.config/nestlogin/config.json``.

    Loaded by :func:`~nestlogin.config.load_settings`. Environment variables
    and CLI flags override these values; see
    :func:`~nestlogin.config.load_settings` for the precedence chain.

    Timeouts are in seconds. ``max_attempts`` bounds the retry loop of a
    single input step; ``0`` disables the cap.
    """

    home_url: str = "https://home.nest.com"
    authorization_endpoint: str = (
        "https://accounts.google.com/o/oauth2/auth/oauthchooseaccount"
    )
    token_endpoint: str = "https://oauth2.googleapis.com/token"
    redirect_uri: str = "urn:ietf:wg:oauth:2.0:oob"
    client_id: str = (
        "733249279899-1gpkq9duqmdp55a7e5lft1pr2smumdla.apps.googleusercontent.com"
    )
    field_test_client_id: str = (
        "384529615266-57v6vaptkmhm64n9hn5dcmkr4at14p8j.apps.googleusercontent.com"
    )
    scopes: list[str] = Field(
        default_factory=lambda: [
            "openid",
            "profile",
            "email",
            "https://www.googleapis.com/auth/nest-account",
        ]
    )
    issue_token_template: str = (
        "https://accounts.google.com/o/oauth2/iframerpc?action=issueToken"
        "&response_type=token%20id_token&login_hint={login_hint}"
        "&client_id={client_id}&origin={origin}"
        "&scope=openid%20profile%20email%20https%3A%2F%2Fwww.googleapis.com"
        "%2Fauth%2Fnest-account&ss_domain={origin}"
    )

    headless: bool = Field(
        default=True,
        description="Run Chromium headless and fill the sign-in form automatically",
    )
    field_test: bool = Field(
        default=False, description="Use the Nest field-test OAuth client"
    )
    executable_path: Optional[str] = Field(
        default=None, description="Browser binary; located automatically when unset"
    )
    extra_args: list[str] = Field(default_factory=list)

    element_timeout: float = 5.0
    rejection_timeout: float = 1.0
    mfa_probe_timeout: float = 1.0
    consent_timeout: float = 30.0
    step_pause: float = 1.0
    max_attempts: int = Field(
        default=5, ge=0, description="Submissions per input step (0 = unbounded)"
    )
    session_timeout: Optional[float] = Field(
        default=None, description="Stop the whole session after this many seconds"
    )

    output: OutputConfig = Field(default_factory=OutputConfig)

    @property
    def active_client_id(self) -> str:
        """The OAuth client id for the selected provider-flow variant."""
        return self.field_test_client_id if self.field_test else self.client_id


# --- Network observation ---


class Cookie(BaseModel):
    """A browser cookie reduced to the two fields the descriptor needs."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str


def _lower_keys(headers: dict[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


class RequestEvent(BaseModel):
    """An outgoing request observed on the page."""

    model_config = ConfigDict(frozen=True)

    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    post_data: Optional[str] = None

    @field_validator("headers")
    @classmethod
    def lower_header_names(cls, value: dict[str, str]) -> dict[str, str]:
        return _lower_keys(value)


class ResponseEvent(BaseModel):
    """An incoming response observed on the page.

    ``cookies`` is filled by the interception engine only for cookie-check
    responses, since reading cookies requires the live browser context.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    request_url: str = ""
    cookies: tuple[Cookie, ...] = ()

    @field_validator("headers")
    @classmethod
    def lower_header_names(cls, value: dict[str, str]) -> dict[str, str]:
        return _lower_keys(value)


NetworkEvent = Union[RequestEvent, ResponseEvent]


class Artifacts(BaseModel):
    """Transient identifiers accumulated from network traffic.

    Produced exclusively by :func:`nestlogin.interception.reduce`. Consumers
    read it only once :func:`nestlogin.interception.is_complete` holds.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = ""
    login_hint: str = ""
    session_cookies: str = ""
    api_key: str = ""
    origin_domain: str = ""


# --- Deliverables ---


class OAuthDescriptor(BaseModel):
    """The ``googleAuth`` object that embeds verbatim into a Nest config.

    Serialise with ``model_dump(by_alias=True)`` to get the
    ``issueToken``/``cookies``/``apiKey`` keys.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    issue_token: str = Field(alias="issueToken")
    cookies: str
    api_key: str = Field(alias="apiKey")


class PkcePair(BaseModel):
    """A PKCE verifier and the authorization URL embedding its challenge."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str
    url: str


class LoginState(str, enum.Enum):
    """Progress of the sign-in state machine."""

    INIT = "init"
    AWAITING_USERNAME = "awaiting_username"
    AWAITING_PASSWORD = "awaiting_password"
    AWAITING_MFA = "awaiting_mfa"
    AWAITING_CONSENT = "awaiting_consent"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class MfaKind(str, enum.Enum):
    """Which second-factor branch the sign-in page presented."""

    TOTP = "totp"
    PUSH = "push"
    RATE_LIMITED = "rate_limited"
    NONE = "none"
