"""Find a Chromium or Chrome binary to drive.

Resolution order:

1. A path given explicitly by the user (``--executable``/``-p`` or the
   ``executable_path`` setting).
2. Playwright's bundled Chromium, on x86-64 hosts where it has been
   installed with ``playwright install chromium``.
3. Well-known install locations for the current platform.
4. ``which`` over the usual binary names.
"""

from __future__ import annotations

import os
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from nestlogin.exceptions import BrowserLaunchError

BINARY_NAMES = ("chromium", "chromium-browser", "chrome", "google-chrome")

_UNIX_SEARCH_DIRS = (
    "/usr/local/sbin",
    "/usr/local/bin",
    "/usr/sbin",
    "/usr/bin",
    "/sbin",
    "/bin",
    "/opt/google/chrome",
)


@dataclass(frozen=True)
class LocatedExecutable:
    """Result of :func:`find_browser_executable`.

    ``path`` is ``None`` when Playwright should use its bundled Chromium.
    """

    path: Optional[str]
    bundled: bool = False

    def describe(self) -> str:
        return self.path or "bundled Chromium"


def _playwright_browsers_dir() -> Path:
    env_value = os.environ.get("PLAYWRIGHT_BROWSERS_PATH", "")
    if env_value and env_value != "0":
        return Path(env_value)
    system = platform.system()
    if system == "Darwin":
        return Path.home() / "Library" / "Caches" / "ms-playwright"
    if system == "Windows":
        return Path(os.environ.get("LOCALAPPDATA", str(Path.home()))) / "ms-playwright"
    return Path.home() / ".cache" / "ms-playwright"


def bundled_chromium_available() -> bool:
    """Return True on x86-64 hosts where Playwright's Chromium is installed."""
    if platform.machine().lower() not in ("x86_64", "amd64"):
        return False
    browsers_dir = _playwright_browsers_dir()
    if not browsers_dir.is_dir():
        return False
    return any(p.is_dir() for p in browsers_dir.glob("chromium-*"))


def candidate_paths(system: Optional[str] = None) -> list[str]:
    """Well-known browser locations for *system* (defaults to the host)."""
    system = system or platform.system()
    if system in ("Linux", "FreeBSD") or system.endswith("BSD"):
        return [os.path.join(d, name) for d in _UNIX_SEARCH_DIRS for name in BINARY_NAMES]
    if system == "Darwin":
        return ["/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"]
    if system == "Windows":
        program_files = os.environ.get("ProgramFiles(x86)", "")
        return [
            os.path.join(program_files, "Google", "Chrome", "Application", "chrome.exe"),
            os.path.join(program_files, "Google", "Application", "chrome.exe"),
        ]
    return []


def find_browser_executable(user_path: Optional[str] = None) -> LocatedExecutable:
    """Resolve the browser to launch.

    Args:
        user_path: Explicit binary path; used unchecked when given so that
            a bad path surfaces as a launch error naming it.

    Returns:
        The located executable.

    Raises:
        BrowserLaunchError: If no browser can be found.
    """
    if user_path:
        return LocatedExecutable(path=user_path)

    if bundled_chromium_available():
        return LocatedExecutable(path=None, bundled=True)

    for candidate in candidate_paths():
        if os.path.isfile(candidate):
            return LocatedExecutable(path=candidate)

    if platform.system() != "Windows":
        for name in BINARY_NAMES:
            found = shutil.which(name)
            if found:
                return LocatedExecutable(path=found)

    raise BrowserLaunchError(
        "Cannot find Chromium or Google Chrome installed on your system. "
        "Run 'playwright install chromium' or pass --executable."
    )
