"""Sign-in form automation: the state machine, the approval observer and prompts."""

from nestlogin.login.machine import ApprovalObserver, LoginStateMachine
from nestlogin.login.prompts import InputSource, LoginUI, Reporter, TerminalPrompter

__all__ = [
    "ApprovalObserver",
    "InputSource",
    "LoginStateMachine",
    "LoginUI",
    "Reporter",
    "TerminalPrompter",
]
