"""Locate a working Godot executable.

The configured path (``GODOT_PATH``) wins when it is valid; otherwise the
usual install locations for the current platform are probed. A candidate
is valid when it exists (or is the bare ``godot`` command on PATH) and
``<candidate> --version`` exits successfully. Results are cached per path.

Examples:
    Resolve once at session start::

        >>> locator = GodotLocator(settings.godot_path)
        >>> await locator.resolve()
        '/usr/local/bin/godot'
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

import sh

from godot_session.lib.errors import RuntimeNotFoundError

logger = logging.getLogger(__name__)

VERSION_TIMEOUT_SECONDS = 10


def platform_candidates(platform: str = sys.platform) -> list[str]:
    """Common Godot install locations for ``platform``."""
    home = str(Path.home())
    candidates = ["godot"]
    if platform == "darwin":
        candidates += [
            "/Applications/Godot.app/Contents/MacOS/Godot",
            "/Applications/Godot_4.app/Contents/MacOS/Godot",
            f"{home}/Applications/Godot.app/Contents/MacOS/Godot",
            f"{home}/Applications/Godot_4.app/Contents/MacOS/Godot",
            f"{home}/Library/Application Support/Steam/steamapps/common/Godot Engine/Godot.app/Contents/MacOS/Godot",
        ]
    elif platform == "win32":
        profile = os.environ.get("USERPROFILE", home)
        candidates += [
            r"C:\Program Files\Godot\Godot.exe",
            r"C:\Program Files (x86)\Godot\Godot.exe",
            r"C:\Program Files\Godot_4\Godot.exe",
            r"C:\Program Files (x86)\Godot_4\Godot.exe",
            rf"{profile}\Godot\Godot.exe",
        ]
    else:
        candidates += [
            "/usr/bin/godot",
            "/usr/local/bin/godot",
            "/snap/bin/godot",
            f"{home}/.local/bin/godot",
        ]
    return candidates


class GodotLocator:
    """Finds and validates the Godot executable.

    Args:
        configured_path: Explicit path from configuration, tried first.
    """

    def __init__(self, configured_path: str | None = None) -> None:
        self.configured_path = os.path.normpath(configured_path) if configured_path else None
        self.validated: dict[str, bool] = {}
        self.resolved: str | None = None

    def is_valid(self, path: str) -> bool:
        """Check ``path`` by running ``--version``; cached per path."""
        if path in self.validated:
            return self.validated[path]

        valid = False
        if path == "godot" or Path(path).exists():
            try:
                version = sh.Command(path)("--version", _timeout=VERSION_TIMEOUT_SECONDS)
                logger.debug("Valid Godot path: %s (%s)", path, str(version).strip())
                valid = True
            except (sh.CommandNotFound, sh.ErrorReturnCode, sh.TimeoutException, OSError) as e:
                logger.debug("Invalid Godot path: %s (%s)", path, e)
        else:
            logger.debug("Path does not exist: %s", path)

        self.validated[path] = valid
        return valid

    def locate(self) -> str:
        """Return the first valid executable.

        Raises:
            RuntimeNotFoundError: If no candidate is valid.
        """
        if self.resolved is not None and self.is_valid(self.resolved):
            return self.resolved

        if self.configured_path is not None:
            if self.is_valid(self.configured_path):
                self.resolved = self.configured_path
                return self.resolved
            logger.warning("Configured GODOT_PATH is invalid: %s", self.configured_path)

        for candidate in platform_candidates():
            path = candidate if candidate == "godot" else os.path.normpath(candidate)
            if self.is_valid(path):
                logger.info("Found Godot at: %s", path)
                self.resolved = path
                return path

        raise RuntimeNotFoundError(
            f"Could not find a valid Godot executable for {sys.platform}. "
            "Set GODOT_PATH to the Godot binary."
        )

    async def resolve(self) -> str:
        """``locate`` without blocking the event loop."""
        return await asyncio.to_thread(self.locate)
