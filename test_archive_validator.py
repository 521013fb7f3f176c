"""
Archive content check: unit tests.
ZIPs and RAR5 archives are built on the fly; a patched ``rarfile`` covers
encryption and reader failures.
"""
import io
import os
from unittest.mock import MagicMock, patch

import pytest
import rarfile

from gamejam.services.archive_validator import (
    ArchiveValidator, ArchiveVerdict, escapes_destination, is_denied_extension,
)

validator = ArchiveValidator()


def _check(data: bytes, destination, filename="project.zip") -> ArchiveVerdict:
    return validator.validate(io.BytesIO(data), filename, str(destination))


def _mark_encrypted(data: bytes) -> bytes:
    """Set the 'encrypted' general-purpose flag on every entry of a ZIP."""
    buf = bytearray(data)
    for signature, flag_offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        pos = buf.find(signature)
        while pos != -1:
            buf[pos + flag_offset] |= 0x01
            pos = buf.find(signature, pos + 4)
    return bytes(buf)


def _rar_info(name, is_dir=False, encrypted=False):
    info = MagicMock()
    info.filename = name
    info.is_dir.return_value = is_dir
    info.needs_password.return_value = encrypted
    return info


# ═══════════════════════════════════════════════════════════════════════════
# PATH CONTAINMENT
# ═══════════════════════════════════════════════════════════════════════════
class TestEscapesDestination:
    @pytest.mark.parametrize("name", [
        "main.py", "src/game/main.py", "assets/", "src/../src/main.py", "./readme.txt",
    ])
    def test_inside(self, tmp_path, name):
        assert escapes_destination(str(tmp_path), name) is False

    @pytest.mark.parametrize("name", [
        "../evil.sh", "../../evil.sh", "src/../../evil.sh", "..\\..\\evil.bat", "/etc/passwd",
    ])
    def test_outside(self, tmp_path, name):
        assert escapes_destination(str(tmp_path), name) is True

    def test_sibling_with_shared_prefix_is_outside(self, tmp_path):
        dest = tmp_path / "Alpha"
        assert escapes_destination(str(dest), "../Alpha_1/steal.txt") is True


class TestDeniedExtensions:
    @pytest.mark.parametrize("ext", [".exe", ".DLL", ".Bat", ".ps1", ".jar", ".js"])
    def test_denied(self, ext):
        assert is_denied_extension(ext)

    @pytest.mark.parametrize("ext", [".py", ".txt", ".png", ".unity", ".sh", ""])
    def test_allowed(self, ext):
        assert not is_denied_extension(ext)


# ═══════════════════════════════════════════════════════════════════════════
# ZIP
# ═══════════════════════════════════════════════════════════════════════════
class TestZipValidation:
    def test_clean_archive_accepted(self, tmp_path, make_zip):
        archive = make_zip({"assets/": "", "src/main.py": "print(1)", "README.md": "# jam"})
        assert _check(archive, tmp_path) == ArchiveVerdict(True, "")

    def test_traversal_rejected(self, tmp_path, make_zip):
        verdict = _check(make_zip({"ok.txt": "x", "../../evil.sh": "boom"}), tmp_path)
        assert verdict == ArchiveVerdict(False, "archive contains disallowed paths")

    def test_executable_rejected_case_insensitively(self, tmp_path, make_zip):
        verdict = _check(make_zip({"build/GAME.EXE": b"MZ"}), tmp_path)
        assert verdict == ArchiveVerdict(False, "disallowed file extension: .exe")

    def test_encrypted_entry_rejected(self, tmp_path, make_zip):
        archive = _mark_encrypted(make_zip({"secret.txt": "hidden"}))
        verdict = _check(archive, tmp_path)
        assert verdict == ArchiveVerdict(False, "encrypted files not allowed")

    def test_garbage_rejected(self, tmp_path):
        assert _check(b"this is not an archive", tmp_path) == ArchiveVerdict(False, "invalid archive")

    def test_format_detected_from_content_not_name(self, tmp_path, make_zip):
        verdict = _check(make_zip(), tmp_path, filename="project.rar")
        assert verdict.valid

    def test_nothing_extracted(self, tmp_path, make_zip):
        _check(make_zip({"src/main.py": "print(1)"}), tmp_path)
        assert os.listdir(tmp_path) == []


# ═══════════════════════════════════════════════════════════════════════════
# RAR
# ═══════════════════════════════════════════════════════════════════════════
RAR_BYTES = b"Rar!\x1a\x07\x01\x00" + b"\x00" * 32


class TestRarValidation:
    def _run(self, tmp_path, entries=None, needs_password=False, open_error=None):
        with patch.object(rarfile, "is_rarfile", return_value=True), \
                patch.object(rarfile, "RarFile") as rar_cls:
            if open_error is not None:
                rar_cls.side_effect = open_error
            archive = rar_cls.return_value
            archive.needs_password.return_value = needs_password
            archive.infolist.return_value = entries or []
            return _check(RAR_BYTES, tmp_path, filename="project.rar")

    def test_encrypted_entry_rejected(self, tmp_path):
        entries = [_rar_info("game/main.lua", encrypted=True)]
        assert self._run(tmp_path, entries).reason == "encrypted files not allowed"

    def test_encrypted_headers_rejected(self, tmp_path):
        assert self._run(tmp_path, needs_password=True).reason == "encrypted files not allowed"

    def test_password_required_on_open_rejected(self, tmp_path):
        verdict = self._run(tmp_path, open_error=rarfile.PasswordRequired("locked"))
        assert verdict.reason == "encrypted files not allowed"

    def test_backslash_traversal_rejected(self, tmp_path):
        entries = [_rar_info("..\\..\\Windows\\evil.txt")]
        assert self._run(tmp_path, entries).reason == "archive contains disallowed paths"

    def test_corrupt_archive_rejected(self, tmp_path):
        verdict = self._run(tmp_path, open_error=rarfile.BadRarFile("truncated"))
        assert verdict == ArchiveVerdict(False, "invalid archive")

    def test_unexpected_error_reported_generically(self, tmp_path):
        verdict = self._run(tmp_path, open_error=RuntimeError("unrar crashed"))
        assert verdict == ArchiveVerdict(False, "error validating archive")


class TestRarHeaders:
    """Real RAR5 headers through the unpatched ``rarfile`` reader."""

    def test_clean_archive_accepted(self, tmp_path, make_rar):
        data = make_rar(["game/", "game/readme.txt", "game/main.lua"])
        assert _check(data, tmp_path, filename="project.rar") == ArchiveVerdict(True, "")

    def test_detected_from_content_not_name(self, tmp_path, make_rar):
        assert _check(make_rar(["game/readme.txt"]), tmp_path, filename="project.zip").valid

    def test_traversal_rejected(self, tmp_path, make_rar):
        verdict = _check(make_rar(["game/readme.txt", "../../evil.sh"]), tmp_path)
        assert verdict == ArchiveVerdict(False, "archive contains disallowed paths")

    @pytest.mark.parametrize("name, ext", [
        ("bin/run.exe", ".exe"),
        ("tools/install.ps1", ".ps1"),
        ("SETUP.BAT", ".bat"),
    ])
    def test_executable_rejected(self, tmp_path, make_rar, name, ext):
        verdict = _check(make_rar(["game/readme.txt", name]), tmp_path)
        assert verdict == ArchiveVerdict(False, f"disallowed file extension: {ext}")

    def test_directory_named_like_script_allowed(self, tmp_path, make_rar):
        assert _check(make_rar(["build.exe/", "build.exe/notes.txt"]), tmp_path).valid

    def test_nothing_extracted(self, tmp_path, make_rar):
        _check(make_rar(["game/readme.txt"]), tmp_path)
        assert os.listdir(tmp_path) == []
