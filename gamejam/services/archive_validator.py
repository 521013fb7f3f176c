# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Archive content check.

Reads only the container's directory records (ZIP central directory, RAR
file headers); nothing is ever extracted. The container format is detected
from the leading bytes, not from the file name.
"""
import os
import zipfile
from typing import BinaryIO, Iterator, NamedTuple, Optional

import rarfile

from gamejam.core.logging import get_logger
from gamejam.metrics import ARCHIVE_VALIDATION_FAILURES

logger = get_logger(__name__)

INVALID_ARCHIVE = "invalid archive"
ENCRYPTED_ENTRY = "encrypted files not allowed"
DISALLOWED_PATH = "archive contains disallowed paths"
DISALLOWED_EXTENSION = "disallowed file extension: {ext}"
VALIDATION_ERROR = "error validating archive"

DENIED_EXTENSIONS = frozenset({
    ".exe", ".dll", ".bat", ".cmd", ".com", ".msi", ".scr",
    ".vbs", ".js", ".jar", ".ps1", ".psm1", ".psd1",
})

_ZIP_ENCRYPTED_FLAG = 0x1


class ArchiveVerdict(NamedTuple):
    valid: bool
    reason: str = ""


class ArchiveEntry(NamedTuple):
    name: str
    is_dir: bool
    encrypted: bool


def is_denied_extension(extension: str) -> bool:
    return extension.lower() in DENIED_EXTENSIONS


def escapes_destination(destination: str, entry_name: str) -> bool:
    """True if extracting ``entry_name`` under ``destination`` would land outside it."""
    root = os.path.abspath(destination)
    # Archives written on Windows may use backslash separators
    target = os.path.abspath(os.path.join(root, entry_name.replace("\\", "/")))
    root_key, target_key = root.lower(), target.lower()
    if target_key == root_key:
        return False
    return not target_key.startswith(root_key.rstrip(os.sep) + os.sep)


class ArchiveValidator:
    def validate(self, stream: BinaryIO, original_filename: str,
                 destination_folder: str) -> ArchiveVerdict:
        try:
            verdict = self._inspect(stream, destination_folder)
        except (zipfile.BadZipFile, rarfile.Error, EOFError) as exc:
            logger.warning("Archive %s could not be read: %s", original_filename, exc)
            verdict = ArchiveVerdict(False, INVALID_ARCHIVE)
        except Exception:
            logger.exception("Error validating archive file %s", original_filename)
            verdict = ArchiveVerdict(False, VALIDATION_ERROR)

        if not verdict.valid:
            ARCHIVE_VALIDATION_FAILURES.labels(reason=verdict.reason.split(":")[0]).inc()
        return verdict

    def _inspect(self, stream: BinaryIO, destination_folder: str) -> ArchiveVerdict:
        stream.seek(0)
        if zipfile.is_zipfile(stream):
            stream.seek(0)
            with zipfile.ZipFile(stream) as archive:
                return self._check_entries(_zip_entries(archive), destination_folder)

        stream.seek(0)
        if rarfile.is_rarfile(stream):
            stream.seek(0)
            try:
                archive = rarfile.RarFile(stream)
            except rarfile.PasswordRequired:
                return ArchiveVerdict(False, ENCRYPTED_ENTRY)
            with archive:
                if archive.needs_password():
                    return ArchiveVerdict(False, ENCRYPTED_ENTRY)
                return self._check_entries(_rar_entries(archive), destination_folder)

        return ArchiveVerdict(False, INVALID_ARCHIVE)

    def _check_entries(self, entries: Iterator[ArchiveEntry],
                       destination_folder: str) -> ArchiveVerdict:
        for entry in entries:
            failure = self._check_entry(entry, destination_folder)
            if failure:
                logger.warning("Archive entry rejected name=%s reason=%s", entry.name, failure)
                return ArchiveVerdict(False, failure)
        return ArchiveVerdict(True, "")

    @staticmethod
    def _check_entry(entry: ArchiveEntry, destination_folder: str) -> Optional[str]:
        if entry.encrypted:
            return ENCRYPTED_ENTRY
        if entry.name and escapes_destination(destination_folder, entry.name):
            return DISALLOWED_PATH
        if not entry.is_dir:
            ext = os.path.splitext(entry.name.replace("\\", "/"))[1].lower()
            if is_denied_extension(ext):
                return DISALLOWED_EXTENSION.format(ext=ext)
        return None


def _zip_entries(archive: zipfile.ZipFile) -> Iterator[ArchiveEntry]:
    for info in archive.infolist():
        yield ArchiveEntry(
            name=info.filename,
            is_dir=info.is_dir(),
            encrypted=bool(info.flag_bits & _ZIP_ENCRYPTED_FLAG),
        )


def _rar_entries(archive: rarfile.RarFile) -> Iterator[ArchiveEntry]:
    for info in archive.infolist():
        yield ArchiveEntry(
            name=info.filename,
            is_dir=info.is_dir(),
            encrypted=info.needs_password(),
        )
