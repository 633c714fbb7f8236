"""Network interception -- extract the ``googleAuth`` artifacts from page traffic.

The extraction logic is an event-sourced reducer so that it can be driven
with synthetic events in tests:

* :func:`reduce` folds one :class:`~nestlogin.models.RequestEvent` or
  :class:`~nestlogin.models.ResponseEvent` into an
  :class:`~nestlogin.models.Artifacts` value and returns a new value.
* :func:`is_complete` says whether every artifact the descriptor needs has
  been captured.
* :func:`is_terminal_failure` recognises the post-auth device query that
  Nest only issues once sign-in has finished.
* :func:`build_descriptor` substitutes the artifacts into the issueToken
  URL template.

:class:`InterceptionEngine` is the stateful adapter that subscribes to a
Playwright page, converts its events and applies the completion policy.
Traffic is only observed, never rerouted or modified.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, quote, urlsplit

from nestlogin.browser.session import SessionStop
from nestlogin.exceptions import DescriptorError, NestLoginError
from nestlogin.models import (
    Artifacts,
    Cookie,
    LoginSettings,
    NetworkEvent,
    OAuthDescriptor,
    RequestEvent,
    ResponseEvent,
)

logger = logging.getLogger(__name__)

COOKIE_CHECK_MARKER = "CheckCookie"
CHALLENGE_MARKER = "challenge?"
CONSENT_MARKER = "consent?"
ISSUE_JWT_MARKER = "issue_jwt"
OWNED_DEVICES_MARKER = "cameras.get_owned_and_member_of_with_properties"
API_KEY_HEADER = "x-goog-api-key"


# --- Pure reducer ---


def is_cookie_check(url: str) -> bool:
    """Return True for the response after which session cookies are readable."""
    return COOKIE_CHECK_MARKER in url


def _first_param(query: str, name: str) -> str:
    values = parse_qs(query, keep_blank_values=True).get(name)
    return values[0] if values else ""


def _query_of(url: str) -> str:
    """Return the query string of *url*, or *url* itself when it has no ``?``."""
    if "?" not in url:
        return url
    return urlsplit(url).query or url.split("?", 1)[1]


def _origin_of(referer: str) -> str:
    """Reduce a ``Referer`` header to ``scheme://host`` without a trailing slash."""
    parts = urlsplit(referer)
    if parts.scheme and parts.netloc:
        return f"{parts.scheme}://{parts.netloc}"
    return referer[:-1] if referer.endswith("/") else referer


def serialize_cookies(cookies: tuple[Cookie, ...] | list[Cookie]) -> str:
    """Join cookies as ``name=value`` pairs separated by ``"; "``."""
    return "; ".join(f"{c.name}={c.value}" for c in cookies)


def reduce(artifacts: Artifacts, event: NetworkEvent) -> Artifacts:
    """Fold one network event into the artifacts.

    Rules are independent of each other and of arrival order. A rule that
    matches but yields an empty value leaves the field untouched, so a
    duplicate or malformed event can never erase a captured artifact.

    Args:
        artifacts: The current artifacts.
        event: An observed request or response.

    Returns:
        The same object when nothing matched, otherwise an updated copy.
    """
    updates: dict[str, str] = {}

    if isinstance(event, ResponseEvent):
        if is_cookie_check(event.url) and event.cookies:
            updates["session_cookies"] = serialize_cookies(event.cookies)

        if CONSENT_MARKER in event.url:
            location = event.headers.get("location", "")
            login_hint = _first_param(_query_of(location), "login_hint")
            if login_hint:
                updates["login_hint"] = login_hint

    elif isinstance(event, RequestEvent):
        if CHALLENGE_MARKER in event.url and event.post_data:
            client_id = _first_param(event.post_data, "client_id")
            if client_id:
                updates["client_id"] = client_id

        api_key = event.headers.get(API_KEY_HEADER, "")
        if ISSUE_JWT_MARKER in event.url and api_key:
            updates["api_key"] = api_key
            referer = event.headers.get("referer", "")
            if referer:
                updates["origin_domain"] = _origin_of(referer)

    if not updates:
        return artifacts
    logger.debug("Captured artifacts: %s", ", ".join(sorted(updates)))
    return artifacts.model_copy(update=updates)


def is_complete(artifacts: Artifacts) -> bool:
    """Return True once client id, login hint, cookies and API key are all captured."""
    return bool(
        artifacts.client_id
        and artifacts.login_hint
        and artifacts.session_cookies
        and artifacts.api_key
    )


def is_terminal_failure(event: NetworkEvent) -> bool:
    """Return True for the device query Nest issues only after a finished sign-in."""
    return isinstance(event, RequestEvent) and OWNED_DEVICES_MARKER in event.url


def build_descriptor(artifacts: Artifacts, settings: LoginSettings) -> OAuthDescriptor:
    """Build the ``googleAuth`` descriptor from complete artifacts.

    Values are percent-encoded as they are substituted into
    ``settings.issue_token_template``.

    Raises:
        DescriptorError: If the artifacts are not complete.
    """
    if not is_complete(artifacts):
        raise DescriptorError("Cannot build a descriptor from incomplete artifacts.")
    origin = quote(artifacts.origin_domain, safe="")
    issue_token = settings.issue_token_template.format(
        login_hint=quote(artifacts.login_hint, safe=""),
        client_id=quote(artifacts.client_id, safe=""),
        origin=origin,
    )
    return OAuthDescriptor(
        issue_token=issue_token,
        cookies=artifacts.session_cookies,
        api_key=artifacts.api_key,
    )


# --- Stateful adapter ---


class InterceptionEngine:
    """Observe a page's traffic and emit the descriptor exactly once.

    The engine owns its :class:`~nestlogin.models.Artifacts` value; nothing
    else writes to it. After every event:

    * if the artifacts are complete and no descriptor exists yet, the
      descriptor is built, handed to *on_descriptor*, and the session stop
      is requested with success;
    * if the post-auth device query is seen and no descriptor exists, a
      :class:`~nestlogin.exceptions.DescriptorError` is handed to
      *on_failure* and the session stop is requested with failure.

    Once either has happened, further events are ignored.

    Args:
        settings: Provides the issueToken template.
        stop: The session's cancellation token.
        on_descriptor: Called with the descriptor when it is built.
        on_failure: Called with the error when the flow cannot complete.
    """

    def __init__(
        self,
        settings: LoginSettings,
        stop: SessionStop,
        on_descriptor: Optional[Callable[[OAuthDescriptor], None]] = None,
        on_failure: Optional[Callable[[NestLoginError], None]] = None,
    ) -> None:
        self._settings = settings
        self._stop = stop
        self._on_descriptor = on_descriptor
        self._on_failure = on_failure
        self._artifacts = Artifacts()
        self._descriptor: Optional[OAuthDescriptor] = None
        self._failure: Optional[NestLoginError] = None
        self._page: Any = None

    @property
    def artifacts(self) -> Artifacts:
        return self._artifacts

    @property
    def descriptor(self) -> Optional[OAuthDescriptor]:
        return self._descriptor

    @property
    def failure(self) -> Optional[NestLoginError]:
        return self._failure

    @property
    def finished(self) -> bool:
        return self._descriptor is not None or self._failure is not None

    def attach(self, page: Any) -> None:
        """Subscribe to *page*'s request and response events.

        Must be called before navigation so that no event is missed.
        """
        self._page = page
        page.on("request", self._on_request)
        page.on("response", self._on_response)

    async def handle(self, event: NetworkEvent) -> None:
        """Apply one event and the completion policy."""
        if self.finished:
            return

        self._artifacts = reduce(self._artifacts, event)

        if is_complete(self._artifacts):
            self._descriptor = build_descriptor(self._artifacts, self._settings)
            logger.info("googleAuth descriptor assembled")
            if self._on_descriptor is not None:
                self._on_descriptor(self._descriptor)
            self._stop.request("descriptor built", succeeded=True)
            return

        if is_terminal_failure(event):
            self._failure = DescriptorError("Could not generate authentication object.")
            logger.info("Device query seen before the descriptor was complete")
            if self._on_failure is not None:
                self._on_failure(self._failure)
            self._stop.request(str(self._failure), error=self._failure)

    async def _on_request(self, request: Any) -> None:
        try:
            post_data = request.post_data
        except (UnicodeDecodeError, ValueError):
            post_data = None
        await self.handle(
            RequestEvent(url=request.url, headers=request.headers, post_data=post_data)
        )

    async def _on_response(self, response: Any) -> None:
        cookies: tuple[Cookie, ...] = ()
        if not self.finished and is_cookie_check(response.url) and self._page is not None:
            raw_cookies = await self._page.context.cookies(self._page.url)
            cookies = tuple(Cookie(name=c["name"], value=c["value"]) for c in raw_cookies)
        await self.handle(
            ResponseEvent(
                url=response.url,
                headers=response.headers,
                request_url=response.request.url,
                cookies=cookies,
            )
        )
