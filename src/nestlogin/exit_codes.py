"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a failure category and is referenced by the
corresponding :class:`~nestlogin.exceptions.NestLoginError` subclass.
Wrapper scripts can inspect the exit code to tell a wrong password from a
missing browser without parsing stderr.

Example::

    $ nestlogin token
    $ echo $?
    5   # EXIT_RATE_LIMITED -- Google locked the account temporarily
"""

EXIT_SUCCESS = 0
"""The flow completed and the artifact was printed."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""Sign-in was rejected (bad credentials, provider rejection, no descriptor)."""

EXIT_SELECTOR_NOT_FOUND = 4
"""An expected element of the sign-in page never appeared."""

EXIT_RATE_LIMITED = 5
"""Google reported too many failed attempts."""

EXIT_BROWSER_ERROR = 6
"""No usable browser could be found or launched."""

EXIT_EXCHANGE_ERROR = 7
"""The authorization code could not be exchanged for a refresh token."""
