# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Streaming multipart ingest.

Reads a multipart/form-data body chunk by chunk, keeps the small metadata
field in memory and writes the archive section straight to a temporary file.
The whole body is never buffered. Sections may arrive in any order.
"""
import os
import uuid
from dataclasses import dataclass, field
from email.message import Message
from email.utils import collapse_rfc2231_value
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import aiofiles
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from gamejam.core.errors import (
    FieldValidation, FileTooLarge, MalformedInput, RegistrationError, UnsupportedFileType,
)
from gamejam.core.logging import get_logger
from gamejam.metrics import UPLOAD_BYTES

logger = get_logger(__name__)

MULTIPART_REQUIRED = "Request must be multipart/form-data"


@dataclass
class IngestResult:
    metadata: Optional[str] = None
    temp_path: Optional[Path] = None
    original_filename: Optional[str] = None
    size: int = 0
    errors: List[RegistrationError] = field(default_factory=list)


def boundary_from_content_type(content_type: Optional[str]) -> bytes:
    """Extract the multipart boundary or raise MalformedInput."""
    if not content_type:
        raise MalformedInput("Invalid request", [MULTIPART_REQUIRED])
    ctype, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if ctype != b"multipart/form-data" or not boundary:
        raise MalformedInput("Invalid request", [MULTIPART_REQUIRED])
    return boundary


def parse_disposition(value: str) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(field_name, filename)`` from a Content-Disposition header.

    An RFC 2231 ``filename*`` parameter wins over a plain ``filename``.
    Client-side directory components are dropped.
    """
    msg = Message()
    msg["content-disposition"] = value
    params = msg.get_params(header="content-disposition") or []
    name, plain, extended = None, None, None
    for key, raw in params[1:]:
        key = key.lower()
        if key == "name":
            name = collapse_rfc2231_value(raw)
        elif key == "filename":
            # the email package folds filename* into a (charset, lang, value) tuple
            if isinstance(raw, tuple):
                extended = raw
            elif plain is None:
                plain = raw
    chosen = extended if extended is not None else plain
    if chosen is None:
        return name, None
    filename = collapse_rfc2231_value(chosen)
    return name, filename.replace("\\", "/").rsplit("/", 1)[-1]


def archive_extension(filename: str) -> str:
    return os.path.splitext(filename)[1].lower()


class MultipartIngestPipeline:
    def __init__(self, temp_dir: Path, max_upload_bytes: int, metadata_max_bytes: int,
                 metadata_field: str = "teamData", archive_field: str = "archiveFile",
                 allowed_extensions: Tuple[str, ...] = (".zip", ".rar")):
        self.temp_dir = Path(temp_dir)
        self.max_upload_bytes = max_upload_bytes
        self.metadata_max_bytes = metadata_max_bytes
        self.metadata_field = metadata_field
        self.archive_field = archive_field
        self.allowed_extensions = tuple(e.lower() for e in allowed_extensions)

    async def ingest(self, chunks: AsyncIterator[bytes], boundary: bytes) -> IngestResult:
        """Consume the body; on disconnect or cancellation the partial file is removed."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        run = _IngestRun(self, boundary)
        try:
            await run.consume(chunks)
        except BaseException:
            await run.abort()
            raise
        return run.finish()


class _IngestRun:
    """State for one request body."""

    def __init__(self, pipeline: MultipartIngestPipeline, boundary: bytes):
        self._pipeline = pipeline
        self._boundary = boundary
        self._events: List[Tuple[str, Any]] = []
        self._result = IngestResult()
        self._header_field = b""
        self._header_value = b""
        self._pending_headers: Dict[str, str] = {}
        self._mode: Optional[str] = None
        self._buffer = bytearray()
        self._file = None
        self._file_path: Optional[Path] = None
        self._file_name: Optional[str] = None
        self._written = 0

    # ── python-multipart callbacks: queue only, I/O happens in _drain ──

    def on_part_begin(self) -> None:
        self._pending_headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        key = self._header_field.decode("latin-1").strip().lower()
        self._pending_headers[key] = self._header_value.decode("utf-8", errors="replace").strip()
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        self._events.append(("headers", self._pending_headers))
        self._pending_headers = {}

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", data[start:end]))

    def on_part_end(self) -> None:
        self._events.append(("end", None))

    # ── driving ──

    async def consume(self, chunks: AsyncIterator[bytes]) -> None:
        parser = MultipartParser(self._boundary, {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        })
        try:
            async for chunk in chunks:
                if chunk:
                    parser.write(chunk)
                    await self._drain()
            parser.finalize()
            await self._drain()
            if self._mode is not None:
                logger.warning("Multipart body ended inside a section")
                await self._discard_file()
                self._mode = None
                self._result.errors.append(
                    MalformedInput("Invalid request", ["Incomplete multipart body"]))
        except MultipartParseError as exc:
            logger.warning("Malformed multipart body: %s", exc)
            await self._discard_file()
            self._mode = None
            self._result.errors.append(
                MalformedInput("Invalid request", ["Malformed multipart body"]))

    async def _drain(self) -> None:
        events, self._events = self._events, []
        for kind, payload in events:
            if kind == "headers":
                await self._start_section(payload)
            elif kind == "data":
                await self._section_data(payload)
            elif kind == "end":
                await self._end_section()

    async def _start_section(self, headers: Dict[str, str]) -> None:
        name, filename = parse_disposition(headers.get("content-disposition", ""))
        if filename is not None:
            if name == self._pipeline.archive_field:
                await self._start_file(name, filename)
            else:
                logger.info("File under unexpected field ignored field=%s filename=%s", name, filename)
                self._mode = "skip"
        elif name == self._pipeline.metadata_field:
            self._mode = "metadata"
            self._buffer = bytearray()
        else:
            self._mode = "skip"

    async def _start_file(self, name: Optional[str], filename: str) -> None:
        self._mode = "skip"
        if not filename:
            return
        if self._result.temp_path is not None:
            logger.warning("Extra file section ignored field=%s filename=%s", name, filename)
            return
        ext = archive_extension(filename)
        if ext not in self._pipeline.allowed_extensions:
            self._result.errors.append(UnsupportedFileType(
                "Unsupported file type", ["Only ZIP and RAR files are allowed"]))
            return
        self._file_path = self._pipeline.temp_dir / f"{uuid.uuid4().hex}{ext}.part"
        self._file_name = filename
        self._written = 0
        self._file = await aiofiles.open(self._file_path, "wb")
        self._mode = "file"

    async def _section_data(self, data: bytes) -> None:
        if self._mode == "file":
            self._written += len(data)
            if self._written > self._pipeline.max_upload_bytes:
                limit_mb = self._pipeline.max_upload_bytes // (1024 * 1024)
                logger.warning("Upload exceeded %d bytes, aborting filename=%s",
                               self._pipeline.max_upload_bytes, self._file_name)
                await self._discard_file()
                self._result.errors.append(FileTooLarge(
                    "File too large", [f"File size must be less than {limit_mb} MB"]))
                self._mode = "skip"
                return
            await self._file.write(data)
        elif self._mode == "metadata":
            self._buffer.extend(data)
            if len(self._buffer) > self._pipeline.metadata_max_bytes:
                self._buffer = bytearray()
                self._result.errors.append(MalformedInput(
                    "Invalid data format", ["Team data is too large"]))
                self._mode = "skip"

    async def _end_section(self) -> None:
        if self._mode == "file":
            await self._file.close()
            self._file = None
            self._result.temp_path = self._file_path
            self._result.original_filename = self._file_name
            self._result.size = self._written
            self._file_path = None
        elif self._mode == "metadata":
            try:
                self._result.metadata = bytes(self._buffer).decode("utf-8")
            except UnicodeDecodeError:
                self._result.errors.append(MalformedInput(
                    "Invalid data format", ["Could not parse team data"]))
            self._buffer = bytearray()
        self._mode = None

    async def _discard_file(self) -> None:
        if self._file is not None:
            await self._file.close()
            self._file = None
        if self._file_path is not None:
            _remove_quietly(self._file_path)
            self._file_path = None

    async def abort(self) -> None:
        await self._discard_file()
        if self._result.temp_path is not None:
            _remove_quietly(self._result.temp_path)
            self._result.temp_path = None

    def finish(self) -> IngestResult:
        result = self._result
        if result.temp_path is not None and result.size == 0:
            _remove_quietly(result.temp_path)
            result.temp_path = None
        if not (result.metadata or "").strip() and not _has_kind(result, MalformedInput):
            result.errors.append(MalformedInput("Invalid request", ["Team data is required"]))
        if result.temp_path is None and not _has_kind(result, (UnsupportedFileType, FileTooLarge)):
            result.errors.append(FieldValidation(
                "Validation failed", ["Archive file (ZIP or RAR) is required"]))
        if result.errors and result.temp_path is not None:
            _remove_quietly(result.temp_path)
            result.temp_path = None
        if result.temp_path is not None:
            UPLOAD_BYTES.observe(result.size)
        return result


def _has_kind(result: IngestResult, kinds) -> bool:
    return any(isinstance(e, kinds) for e in result.errors)


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove temp file %s: %s", path, exc)
