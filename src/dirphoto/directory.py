"""Directory store adapter: list identities and read/write their photos.

The concrete store drives the ActiveDirectory PowerShell module through
``powershell -NoProfile -Command``. Photos travel as base64 text on stdout
(reads) and stdin (writes), so no temporary files are involved.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from dirphoto.config import Settings

logger = logging.getLogger(__name__)

DEV_FALLBACK_USERS: tuple[str, ...] = ("TestUser1", "TestUser2")

# PowerShell treats the typographic single quotes as quote characters too.
_PS_SINGLE_QUOTES = ("'", "‘", "’", "‚", "‛")


class DirectoryError(RuntimeError):
    """The directory service rejected or failed a request."""


class DirectoryStore(Protocol):
    """Protocol for the directory service holding identity photos."""

    async def list_users(self) -> list[str]:
        """Return the usernames that can receive a photo."""
        ...

    async def get_photo(self, username: str) -> bytes | None:
        """Return the stored photo, or None if the identity has none."""
        ...

    async def set_photo(self, username: str, photo: bytes) -> None:
        """Replace the identity's stored photo."""
        ...


def quote_ps_literal(value: str) -> str:
    """Render ``value`` as a single-quoted PowerShell string literal."""
    if not value:
        raise ValueError("username must not be empty")
    if "\x00" in value:
        raise ValueError("username must not contain NUL characters")
    for quote in _PS_SINGLE_QUOTES:
        value = value.replace(quote, quote * 2)
    return f"'{value}'"


class PowerShellDirectoryStore:
    """Reads and writes ``thumbnailPhoto`` through the ActiveDirectory cmdlets."""

    def __init__(self, settings: Settings) -> None:
        self._executable = settings.powershell_executable
        self._group = settings.directory_group
        self._dev_fallback = settings.dev_fallback_users

    # -- Public API ---------------------------------------------------------

    async def list_users(self) -> list[str]:
        script = (
            f"Get-ADGroupMember -Identity {quote_ps_literal(self._group)} "
            '| Where-Object {$_.objectClass -eq "user"} '
            "| Get-ADUser | Select-Object -ExpandProperty SamAccountName | Sort-Object"
        )
        try:
            returncode, output = await self._run(script)
        except FileNotFoundError:
            if self._dev_fallback:
                logger.warning("%s not found, returning development user list", self._executable)
                return list(DEV_FALLBACK_USERS)
            raise DirectoryError(f"{self._executable} not found") from None

        if returncode != 0:
            logger.error("Error listing users (exit %s): %s", returncode, output)
            raise DirectoryError(f"Failed to list users: {output.strip()}")

        return [line.strip() for line in output.splitlines() if line.strip()]

    async def get_photo(self, username: str) -> bytes | None:
        script = (
            f"$user = Get-ADUser -Identity {quote_ps_literal(username)} -Properties thumbnailPhoto\n"
            "if ($user.thumbnailPhoto) { [System.Convert]::ToBase64String($user.thumbnailPhoto) }"
        )
        try:
            returncode, output = await self._run(script)
        except FileNotFoundError:
            logger.warning("%s not found, no photo for %s", self._executable, username)
            return None

        if returncode != 0:
            logger.error("Error getting photo for %s (exit %s): %s", username, returncode, output)
            return None

        encoded = output.strip()
        if not encoded:
            return None
        try:
            return base64.b64decode(encoded, validate=True)
        except binascii.Error:
            logger.error("Photo for %s is not valid base64", username)
            return None

    async def set_photo(self, username: str, photo: bytes) -> None:
        script = (
            "$base64 = ($input | Out-String).Trim()\n"
            "$bytes = [System.Convert]::FromBase64String($base64)\n"
            f"Set-ADUser -Identity {quote_ps_literal(username)} -Replace @{{thumbnailPhoto=$bytes}}"
        )
        try:
            returncode, output = await self._run(script, stdin=base64.b64encode(photo))
        except FileNotFoundError:
            raise DirectoryError(f"{self._executable} not found") from None

        if returncode != 0:
            raise DirectoryError(f"PowerShell error (exit {returncode}): {output.strip()}")
        logger.info("Stored %d byte photo for %s", len(photo), username)

    # -- Internal -----------------------------------------------------------

    async def _run(self, script: str, stdin: bytes | None = None) -> tuple[int | None, str]:
        process = await asyncio.create_subprocess_exec(
            self._executable,
            "-NoProfile",
            "-NonInteractive",
            "-Command",
            script,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        output, _ = await process.communicate(stdin)
        return process.returncode, output.decode("utf-8", errors="replace")
