"""PKCE authorization URL and authorization-code exchange for the Nest client.

The refresh-token flow is an OAuth2 Authorization Code grant with PKCE
(:rfc:`7636`) using Google's out-of-band redirect: instead of redirecting
to a local server, Google renders an *approval* page whose body embeds the
authorization code. The pieces here are:

* :func:`generate_pkce_pair` -- a verifier and its S256 challenge.
* :func:`build_authorization_url` -- the URL the browser navigates to,
  returned together with the verifier as a
  :class:`~nestlogin.models.PkcePair`.
* :func:`parse_authorization_code` -- pulls the code out of the approval
  page body.
* :class:`TokenExchanger` -- posts the code and verifier to the token
  endpoint and returns the refresh token.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from typing import Any, Optional
from urllib.parse import parse_qs, quote, unquote, urlencode

import httpx

from nestlogin.exceptions import RateLimitedError, TokenExchangeError
from nestlogin.models import LoginSettings, PkcePair

logger = logging.getLogger(__name__)

INVALID_REQUEST_URL = "Invalid request url."


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def build_authorization_url(
    settings: LoginSettings, code_challenge: str
) -> str:
    """Build the Google authorization URL for the active Nest client.

    Args:
        settings: Supplies the endpoint, client id variant, scopes and
            redirect URI.
        code_challenge: The S256 challenge derived from the verifier.
    """
    params = {
        "access_type": "offline",
        "response_type": "code",
        "scope": " ".join(settings.scopes),
        "redirect_uri": settings.redirect_uri,
        "client_id": settings.active_client_id,
        "code_challenge_method": "S256",
        "code_challenge": code_challenge,
    }
    return f"{settings.authorization_endpoint}?{urlencode(params, quote_via=quote)}"


def new_pkce_pair(settings: LoginSettings) -> PkcePair:
    """Generate a fresh verifier and the authorization URL that embeds its challenge."""
    code_verifier, code_challenge = generate_pkce_pair()
    return PkcePair(
        code_verifier=code_verifier,
        url=build_authorization_url(settings, code_challenge),
    )


def parse_authorization_code(body: str) -> str:
    """Extract the authorization code from the approval page body.

    The body is percent-decoded, then the text after the first ``?`` up to
    the following ``"`` is taken as a query string. The code is its
    ``code`` parameter, or the value after ``code=`` inside a ``response``
    parameter; if neither is present the query string itself is the code.

    Args:
        body: The raw approval response body.

    Returns:
        The authorization code.

    Raises:
        TokenExchangeError: If the body holds no query string.
    """
    text = unquote(body)
    if "?" not in text:
        raise TokenExchangeError(INVALID_REQUEST_URL)
    query = text.split("?", 1)[1].split('"', 1)[0].strip()
    if not query:
        raise TokenExchangeError(INVALID_REQUEST_URL)

    params = parse_qs(query, keep_blank_values=True)
    if params.get("code") and params["code"][0]:
        return params["code"][0]
    response = params.get("response", [""])[0]
    if response.startswith("code="):
        return response[len("code="):]
    return query


class TokenExchanger:
    """Exchange an authorization code and PKCE verifier for a refresh token.

    Failures are reported as :class:`~nestlogin.exceptions.TokenExchangeError`
    (HTTP 429 as :class:`~nestlogin.exceptions.RateLimitedError`) and never
    retried; a second attempt with the same code would be refused.

    Args:
        settings: Supplies the token endpoint, client id and redirect URI.
        client: Optional ``httpx.AsyncClient`` to send through (tests pass
            one backed by ``httpx.MockTransport``).
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        settings: LoginSettings,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self._settings = settings
        self._client = client
        self._timeout = timeout

    def _form(self, code: str, code_verifier: str) -> dict[str, str]:
        return {
            "code": code,
            "code_verifier": code_verifier,
            "grant_type": "authorization_code",
            "redirect_uri": self._settings.redirect_uri,
            "client_id": self._settings.active_client_id,
        }

    async def exchange(self, code: str, code_verifier: str) -> str:
        """POST the code to the token endpoint and return the refresh token.

        Raises:
            RateLimitedError: If the token endpoint answers HTTP 429.
            TokenExchangeError: On other HTTP errors, transport errors, a non-JSON
                body, or a response without ``refresh_token``.
        """
        if not code:
            raise TokenExchangeError(INVALID_REQUEST_URL)

        endpoint = self._settings.token_endpoint
        logger.debug("Exchanging authorization code at %s", endpoint)
        try:
            if self._client is not None:
                response = await self._post(self._client, endpoint, code, code_verifier)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, endpoint, code, code_verifier)
            response.raise_for_status()
            token_data: dict[str, Any] = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimitedError(
                    "Token exchange refused: too many requests. Try again later."
                ) from exc
            raise TokenExchangeError(
                f"Token exchange failed with status {exc.response.status_code}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TokenExchangeError(f"Token exchange failed: {exc}") from exc
        except ValueError as exc:
            raise TokenExchangeError(f"Token exchange returned invalid JSON: {exc}") from exc

        refresh_token = token_data.get("refresh_token") if isinstance(token_data, dict) else None
        if not refresh_token:
            raise TokenExchangeError("Token response missing 'refresh_token' field")
        return str(refresh_token)

    async def _post(
        self, client: httpx.AsyncClient, endpoint: str, code: str, code_verifier: str
    ) -> httpx.Response:
        return await client.post(
            endpoint,
            data=self._form(code, code_verifier),
            headers={"Accept": "application/json"},
            timeout=self._timeout,
        )
