"""nestlogin -- Automate the Google sign-in used by Nest and harvest OAuth artifacts.

Two flows are supported:

* **Refresh-token flow** -- drives the Google sign-in form (username,
  password, optional second factor, consent) in a Chromium instance, parses
  the authorization code from the approval page and exchanges it with PKCE
  for a long-lived refresh token.
* **Descriptor flow** -- the user signs in manually while the network
  traffic of the page is observed; the transient identifiers needed to
  build a ``googleAuth`` descriptor (issueToken URL, cookies, API key) are
  extracted from requests and responses.

Typical usage::

    nestlogin token                 # prints a refresh token
    nestlogin config                # prints a googleAuth descriptor

Modules:
    app: Typer application and CLI entry point.
    auto_login: Orchestrates the browser session and both flows.
    interception: Network artifact reducer and interception engine.
    login: Sign-in form state machine and credential prompts.
    oauth: PKCE, authorization URL and code exchange.
    models: Pydantic models shared across the package.
    config: XDG-aware settings and credential source resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr output discipline and logging setup.
"""

__version__ = "0.3.0"
