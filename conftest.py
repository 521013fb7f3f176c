"""
Shared test setup: a throwaway SQLite database and uploads root.

Settings are read from the environment at import time, so the variables are
set here before any ``gamejam`` module is imported by a test module.
"""
import io
import json
import os
import shutil
import struct
import tempfile
import zipfile
import zlib

import pytest

_TMP_ROOT = tempfile.mkdtemp(prefix="gamejam-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_ROOT, 'gamejam-test.db')}"
os.environ["UPLOADS_ROOT"] = os.path.join(_TMP_ROOT, "Uploads")
os.environ["UPLOAD_TMP_DIR"] = os.path.join(_TMP_ROOT, "Uploads", ".incoming")
os.environ["DB_RETRY_BACKOFF_BASE"] = "0"
os.environ["SCHEMA_INIT_DELAY"] = "0"
os.environ["AUTO_CREATE_SCHEMA"] = "true"
os.environ["LOG_LEVEL"] = "WARNING"


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_TMP_ROOT, ignore_errors=True)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def make_zip():
    """Build an in-memory ZIP from ``{entry_name: content}``."""

    def _build(entries=None) -> bytes:
        entries = entries if entries is not None else {"game/main.py": "print('hello jam')\n"}
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
            for name, content in entries.items():
                zf.writestr(name, content)
        return buf.getvalue()

    return _build


def _vint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte, value = value & 0x7F, value >> 7
        out.append(byte | (0x80 if value else 0))
        if not value:
            return bytes(out)


def _rar5_block(*fields: int, tail: bytes = b"") -> bytes:
    body = b"".join(_vint(f) for f in fields) + tail
    size = _vint(len(body))
    return struct.pack("<I", zlib.crc32(size + body)) + size + body


@pytest.fixture
def make_rar():
    """Build a RAR5 archive listing ``names``; a trailing ``/`` marks a directory.

    Entries are header-only (no data area), which is all a listing reads.
    """

    def _build(names) -> bytes:
        out = b"Rar!\x1a\x07\x01\x00" + _rar5_block(1, 0, 0)
        for name in names:
            is_dir = name.endswith("/")
            raw = name.rstrip("/").encode("utf-8")
            # type, block flags, file flags, size, mode, compression, host os (unix)
            out += _rar5_block(2, 0, 0x1 if is_dir else 0, 0, 0o40755 if is_dir else 0o100644,
                               0, 1, len(raw), tail=raw)
        return out + _rar5_block(5, 0, 0)

    return _build


@pytest.fixture
def build_multipart():
    """Encode ``[(disposition_params, content_bytes), ...]`` as a multipart body.

    Returns ``(body, content_type)``. Lets tests control section order and
    header details that form encoders normalise away.
    """

    def _build(parts, boundary="jamBoundary7MA4YWxkTrZu0gW"):
        out = bytearray()
        for disposition, content in parts:
            out += f"--{boundary}\r\n".encode()
            out += f"Content-Disposition: form-data; {disposition}\r\n".encode("utf-8")
            out += b"Content-Type: application/octet-stream\r\n\r\n"
            out += content if isinstance(content, bytes) else content.encode("utf-8")
            out += b"\r\n"
        out += f"--{boundary}--\r\n".encode()
        return bytes(out), f"multipart/form-data; boundary={boundary}"

    return _build


@pytest.fixture
def team_payload():
    """Build the ``teamData`` JSON text for a team with the given phone numbers."""

    def _build(team_name="Pixel Pioneers", phones=("09123456789",)) -> str:
        members = [
            {"firstName": f"Sara{chr(ord('a') + i)}", "lastName": "Ahmadi", "phoneNumber": phone}
            for i, phone in enumerate(phones)
        ]
        return json.dumps({"teamName": team_name, "members": members})

    return _build
