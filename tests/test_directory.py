"""Tests for the PowerShell directory store."""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dirphoto.config import Settings
from dirphoto.directory import (
    DEV_FALLBACK_USERS,
    DirectoryError,
    PowerShellDirectoryStore,
    quote_ps_literal,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_store(**overrides: object) -> PowerShellDirectoryStore:
    return PowerShellDirectoryStore(Settings(**overrides))  # type: ignore[arg-type]


def _fake_process(output: bytes, returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(output, None))
    process.returncode = returncode
    return process


def _patch_exec(process: MagicMock | None = None, side_effect: BaseException | None = None) -> AsyncMock:
    return patch(  # type: ignore[return-value]
        "dirphoto.directory.asyncio.create_subprocess_exec",
        new=AsyncMock(return_value=process, side_effect=side_effect),
    )


# ---------------------------------------------------------------------------
# Quoting
# ---------------------------------------------------------------------------


class TestQuoting:
    def test_plain_name(self) -> None:
        assert quote_ps_literal("alice") == "'alice'"

    def test_single_quotes_doubled(self) -> None:
        assert quote_ps_literal("o'brien") == "'o''brien'"

    def test_typographic_quotes_doubled(self) -> None:
        assert quote_ps_literal("o’brien") == "'o’’brien'"

    def test_injection_stays_inside_literal(self) -> None:
        quoted = quote_ps_literal("x'; Remove-ADUser bob; '")
        assert quoted == "'x''; Remove-ADUser bob; '''"

    @pytest.mark.parametrize("value", ["", "a\x00b"])
    def test_invalid_names_rejected(self, value: str) -> None:
        with pytest.raises(ValueError):
            quote_ps_literal(value)


# ---------------------------------------------------------------------------
# PowerShellDirectoryStore
# ---------------------------------------------------------------------------


class TestListUsers:
    async def test_parses_output(self) -> None:
        with _patch_exec(_fake_process(b"alice\r\nbob\r\n\r\n")) as mock_exec:
            users = await _make_store().list_users()

        assert users == ["alice", "bob"]
        args = mock_exec.call_args.args
        assert args[:4] == ("powershell", "-NoProfile", "-NonInteractive", "-Command")
        assert "Get-ADGroupMember -Identity 'Domain Users'" in args[4]

    async def test_custom_group_and_executable(self) -> None:
        with _patch_exec(_fake_process(b"")) as mock_exec:
            users = await _make_store(powershell_executable="pwsh", directory_group="Staff").list_users()

        assert users == []
        args = mock_exec.call_args.args
        assert args[0] == "pwsh"
        assert "-Identity 'Staff'" in args[4]

    async def test_missing_powershell_falls_back(self) -> None:
        with _patch_exec(side_effect=FileNotFoundError("powershell")):
            users = await _make_store().list_users()
        assert users == list(DEV_FALLBACK_USERS)

    async def test_missing_powershell_without_fallback(self) -> None:
        with _patch_exec(side_effect=FileNotFoundError("powershell")), pytest.raises(DirectoryError):
            await _make_store(dev_fallback_users=False).list_users()

    async def test_command_failure_raises(self) -> None:
        with _patch_exec(_fake_process(b"Get-ADGroupMember: access denied", 1)), pytest.raises(
            DirectoryError, match="access denied"
        ):
            await _make_store().list_users()


class TestGetPhoto:
    async def test_returns_decoded_photo(self) -> None:
        photo = b"\xff\xd8\xff\xe0jpeg-bytes"
        with _patch_exec(_fake_process(base64.b64encode(photo) + b"\r\n")) as mock_exec:
            result = await _make_store().get_photo("alice")

        assert result == photo
        assert "Get-ADUser -Identity 'alice'" in mock_exec.call_args.args[4]

    async def test_no_photo_returns_none(self) -> None:
        with _patch_exec(_fake_process(b"\r\n")):
            assert await _make_store().get_photo("alice") is None

    async def test_failure_returns_none(self) -> None:
        with _patch_exec(_fake_process(b"Cannot find an object with identity", 1)):
            assert await _make_store().get_photo("ghost") is None

    async def test_garbage_output_returns_none(self) -> None:
        with _patch_exec(_fake_process(b"WARNING: something odd")):
            assert await _make_store().get_photo("alice") is None

    async def test_missing_powershell_returns_none(self) -> None:
        with _patch_exec(side_effect=FileNotFoundError("powershell")):
            assert await _make_store().get_photo("alice") is None


class TestSetPhoto:
    async def test_sends_base64_on_stdin(self) -> None:
        process = _fake_process(b"")
        with _patch_exec(process) as mock_exec:
            await _make_store().set_photo("o'brien", b"\xff\xd8photo")

        script = mock_exec.call_args.args[4]
        assert "Set-ADUser -Identity 'o''brien' -Replace @{thumbnailPhoto=$bytes}" in script
        process.communicate.assert_awaited_once_with(base64.b64encode(b"\xff\xd8photo"))

    async def test_failure_raises(self) -> None:
        with _patch_exec(_fake_process(b"Insufficient access rights", 1)), pytest.raises(
            DirectoryError, match="Insufficient access rights"
        ):
            await _make_store().set_photo("alice", b"photo")

    async def test_missing_powershell_raises(self) -> None:
        with _patch_exec(side_effect=FileNotFoundError("powershell")), pytest.raises(DirectoryError):
            await _make_store().set_photo("alice", b"photo")

    async def test_empty_username_rejected(self) -> None:
        with pytest.raises(ValueError):
            await _make_store().set_photo("", b"photo")
