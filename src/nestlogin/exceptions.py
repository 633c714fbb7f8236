"""Exception hierarchy for nestlogin.

All exceptions inherit from :class:`NestLoginError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`nestlogin.exit_codes`.
The session orchestrator in :mod:`nestlogin.auto_login` catches
``NestLoginError`` raised inside a login step, reports its message and stops
the browser session. The CLI entry point in :func:`nestlogin.app.main` maps
anything that escapes to the matching process exit code.

Subclass hierarchy::

    NestLoginError (exit 1)
    +-- InvalidUsageError       (exit 2)
    +-- ConfigError             (exit 1)
    +-- BrowserLaunchError      (exit 6)
    +-- SelectorNotFoundError   (exit 4)
    +-- InputRejectedError      (exit 3)
    |   +-- EmptyInputError
    |   +-- RetriesExhaustedError
    +-- ProviderRejectedError   (exit 3)
    +-- DescriptorError         (exit 3)
    +-- RateLimitedError        (exit 5)
    +-- TokenExchangeError      (exit 7)
    +-- SessionStoppedError     (exit 1)
"""

from nestlogin.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_BROWSER_ERROR,
    EXIT_EXCHANGE_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_RATE_LIMITED,
    EXIT_SELECTOR_NOT_FOUND,
)


class NestLoginError(Exception):
    """Base exception for all nestlogin errors.

    Args:
        message: Human-readable error description shown to the user.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(NestLoginError):
    """Raised for invalid CLI arguments."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(NestLoginError):
    """Raised for configuration problems (invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class BrowserLaunchError(NestLoginError):
    """Raised when no browser executable is found or Chromium fails to launch."""

    exit_code = EXIT_BROWSER_ERROR


class SelectorNotFoundError(NestLoginError):
    """Raised when an expected sign-in element does not appear within its timeout.

    Never retried: the page layout is not what the state machine expects.
    """

    exit_code = EXIT_SELECTOR_NOT_FOUND


class InputRejectedError(NestLoginError):
    """Base for failures of an input step caused by the value supplied."""

    exit_code = EXIT_AUTH_FAILURE


class EmptyInputError(InputRejectedError):
    """Raised when the user (or UI) supplies an empty value for a step."""


class RetriesExhaustedError(InputRejectedError):
    """Raised when a step was rejected ``max_attempts`` times in a row.

    Attributes:
        alias: The step that was being retried (``username``, ``password``,
            ``totp``).
        attempts: Number of submissions made.
    """

    def __init__(self, alias: str, attempts: int):
        super().__init__(f"Too many incorrect {alias} attempts ({attempts}).")
        self.alias = alias
        self.attempts = attempts


class ProviderRejectedError(NestLoginError):
    """Raised when Google itself rejects the flow out of band."""

    exit_code = EXIT_AUTH_FAILURE


class DescriptorError(NestLoginError):
    """Raised when the post-auth device check is seen before a descriptor was built."""

    exit_code = EXIT_AUTH_FAILURE


class RateLimitedError(NestLoginError):
    """Raised on Google's "too many failed attempts" lockout.

    Also raised when the token endpoint answers HTTP 429.
    """

    exit_code = EXIT_RATE_LIMITED


class TokenExchangeError(NestLoginError):
    """Raised when the authorization code cannot be parsed or exchanged."""

    exit_code = EXIT_EXCHANGE_ERROR


class SessionStoppedError(NestLoginError):
    """Raised inside the form driver when the session was stopped by the observer."""

    exit_code = EXIT_GENERIC_FAILURE
