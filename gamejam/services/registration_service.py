# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Business logic for team registration.

Stage order for one submission:
    received ─► metadata_parsed ─► fields_validated ─► folder_allocated
             ─► archive_validated ─► persisted ─► finalized
Any failure before persisted ends in ``rejected``; from persisted onward it
ends in ``failed``. Both roll back every file, folder and row created so far.
"""
import itertools
import json
import re
import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from gamejam.core.errors import (
    ArchiveInvalid, DuplicatePhone, FieldValidation, MalformedInput, PersistenceFailure,
    RegistrationError, UnexpectedFailure, combine,
)
from gamejam.core.logging import get_logger
from gamejam.metrics import REGISTRATIONS_REJECTED, REGISTRATIONS_TOTAL
from gamejam.repositories.team_repository import TeamRepository
from gamejam.schemas import RegistrationRequest
from gamejam.services.archive_validator import ArchiveValidator
from gamejam.services.multipart_ingest import IngestResult, archive_extension

logger = get_logger(__name__)

TEAM_NAME_PATTERN = re.compile(r"[A-Za-z0-9\-_ \u0600-\u06FF]+")
PHONE_PATTERN = re.compile(r"09[0-9]{9}")
_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
SNAPSHOT_FILE = "team_info.json"


class RegistrationStage(str, Enum):
    RECEIVED = "received"
    METADATA_PARSED = "metadata_parsed"
    FIELDS_VALIDATED = "fields_validated"
    FOLDER_ALLOCATED = "folder_allocated"
    ARCHIVE_VALIDATED = "archive_validated"
    PERSISTED = "persisted"
    FINALIZED = "finalized"
    REJECTED = "rejected"
    FAILED = "failed"


_COMMITTED_STAGES = (RegistrationStage.PERSISTED, RegistrationStage.FINALIZED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def sanitize_folder_name(name: Optional[str], max_length: int = 50) -> str:
    """Turn a display name into a filesystem-safe folder token."""
    cleaned = _INVALID_FILENAME_CHARS.sub("", name or "")
    cleaned = re.sub(r"\s", "_", cleaned)
    cleaned = re.sub(r"_+", "_", cleaned)
    cleaned = cleaned.strip("_")
    if not cleaned or set(cleaned) == {"."}:
        cleaned = f"team_{uuid.uuid4().hex[:8]}"
    return cleaned[:max_length]


def _with_suffix(base: str, counter: int, max_length: int) -> str:
    suffix = f"_{counter}"
    return base[: max_length - len(suffix)] + suffix


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_fields(request: RegistrationRequest, min_members: int = 1,
                    max_members: int = 4) -> List[str]:
    """Collect every field problem; never stops at the first one."""
    errors: List[str] = []

    name = request.team_name
    if _blank(name):
        errors.append("Team name is required")
    elif not 3 <= len(name) <= 100:
        errors.append("Team name must be between 3 and 100 characters")
    elif not TEAM_NAME_PATTERN.fullmatch(name):
        errors.append("Team name contains invalid characters")

    members = request.members or []
    if len(members) < min_members:
        errors.append("At least one team member is required")
    elif len(members) > max_members:
        errors.append(f"A team can have at most {max_members} members")
    else:
        for position, member in enumerate(members, start=1):
            for label, value in (("first name", member.first_name),
                                 ("last name", member.last_name)):
                if _blank(value):
                    errors.append(f"Member {position}: {label} is required")
                elif not 2 <= len(value) <= 50:
                    errors.append(f"Member {position}: {label} must be between 2 and 50 characters")
            if _blank(member.phone_number):
                errors.append(f"Member {position}: phone number is required")
            elif not PHONE_PATTERN.fullmatch(member.phone_number):
                errors.append(f"Member {position}: invalid phone number format")
    return errors


@dataclass
class _Attempt:
    upload: IngestResult
    stage: RegistrationStage = RegistrationStage.RECEIVED
    temp_path: Optional[Path] = None
    folder_name: Optional[str] = None
    folder_path: Optional[Path] = None
    archive_path: Optional[Path] = None
    team_id: Optional[int] = None

    def advance(self, stage: RegistrationStage) -> None:
        logger.debug("Registration stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage


class RegistrationService:
    def __init__(self, repo: TeamRepository, archive_validator: ArchiveValidator,
                 uploads_root: Path, folder_max_length: int = 50,
                 min_members: int = 1, max_members: int = 4,
                 persist_attempts: int = 3,
                 clock: Callable[[], datetime] = _utcnow):
        self._repo = repo
        self._validator = archive_validator
        self._uploads_root = Path(uploads_root)
        self._folder_max_length = folder_max_length
        self._min_members = min_members
        self._max_members = max_members
        self._persist_attempts = persist_attempts
        self._clock = clock

    # ── Public ─────────────────────────────────────────────────────────

    def register(self, upload: IngestResult) -> Dict[str, Any]:
        attempt = _Attempt(upload=upload, temp_path=upload.temp_path)
        try:
            result = self._register(attempt)
        except RegistrationError as exc:
            self._finish_unsuccessful(attempt, exc)
            raise
        except Exception as exc:
            logger.exception("Unexpected registration failure at stage=%s", attempt.stage.value)
            failure = UnexpectedFailure("Unexpected failure")
            self._finish_unsuccessful(attempt, failure)
            raise failure from exc
        REGISTRATIONS_TOTAL.labels(outcome="accepted").inc()
        return result

    def list_teams(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": t["id"],
                "team_name": t["team_name"],
                "sanitized_folder_name": t["sanitized_folder_name"],
                "member_count": len(t["members"]),
                "members": [
                    {"first_name": m["first_name"], "last_name": m["last_name"],
                     "phone_number": m["phone_number"]}
                    for m in t["members"]
                ],
                "created_at": t["created_at"],
                "archive_file_name": t["archive_file_name"],
                "archive_type": archive_extension(t["archive_file_name"] or ""),
            }
            for t in self._repo.list_teams()
        ]

    def parse_request(self, metadata: str) -> RegistrationRequest:
        try:
            payload = json.loads(metadata)
        except ValueError as exc:
            logger.warning("Invalid JSON data received: %s", exc)
            raise MalformedInput("Invalid data format", ["Could not parse team data"]) from exc
        if payload is None:
            raise MalformedInput("Invalid request", ["Team data is required"])
        try:
            return RegistrationRequest.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Team data has the wrong shape: %s", exc.errors(include_url=False))
            raise MalformedInput("Invalid data format", ["Could not parse team data"]) from exc

    def check_phone_numbers(self, request: RegistrationRequest) -> List[str]:
        phones = [m.phone_number for m in request.members]
        errors: List[str] = []
        duplicates = [p for p in dict.fromkeys(phones) if phones.count(p) > 1]
        if duplicates:
            errors.append(f"Duplicate phone numbers among team members: {', '.join(duplicates)}")
        for phone in dict.fromkeys(phones):
            if self._repo.exists_by_phone(phone):
                errors.append(f"Phone number {phone} is already registered")
        return errors

    def allocate_folder(self, team_name: str) -> Tuple[str, Path]:
        """Reserve the first free ``name``, ``name_1``, ``name_2``, ... and create its directory."""
        base = sanitize_folder_name(team_name, self._folder_max_length)
        self._uploads_root.mkdir(parents=True, exist_ok=True)
        for counter in itertools.count():
            candidate = base if counter == 0 else _with_suffix(base, counter, self._folder_max_length)
            if self._repo.exists_by_folder_name(candidate):
                continue
            path = self._uploads_root / candidate
            try:
                path.mkdir()
            except FileExistsError:
                logger.warning("Folder %s already on disk, trying next suffix", candidate)
                continue
            return candidate, path

    # ── Stages ─────────────────────────────────────────────────────────

    def _register(self, attempt: _Attempt) -> Dict[str, Any]:
        upload = attempt.upload
        request = self._validated_request(attempt)

        phone_errors = self.check_phone_numbers(request)
        if phone_errors:
            raise DuplicatePhone("Duplicate phone number", phone_errors)

        attempt.folder_name, attempt.folder_path = self.allocate_folder(request.team_name)
        attempt.advance(RegistrationStage.FOLDER_ALLOCATED)

        ext = archive_extension(upload.original_filename)
        stamp = self._clock().strftime("%Y%m%d_%H%M%S")
        archive_path = attempt.folder_path / f"{attempt.folder_name}_{stamp}{ext}"
        shutil.move(str(attempt.temp_path), str(archive_path))
        attempt.archive_path, attempt.temp_path = archive_path, None

        with open(archive_path, "rb") as fh:
            verdict = self._validator.validate(fh, upload.original_filename, str(attempt.folder_path))
        if not verdict.valid:
            raise ArchiveInvalid("Invalid archive file", [verdict.reason])
        attempt.advance(RegistrationStage.ARCHIVE_VALIDATED)

        team = self._persist(attempt, request)
        attempt.advance(RegistrationStage.PERSISTED)

        self._write_snapshot(attempt, team, ext)
        attempt.advance(RegistrationStage.FINALIZED)
        logger.info("Team '%s' (ID: %s) registered with %d members folder=%s",
                    team["team_name"], team["id"], len(team["members"]), team["sanitized_folder_name"])
        return {
            "team_id": team["id"],
            "team_name": team["team_name"],
            "folder_name": team["sanitized_folder_name"],
            "member_count": len(team["members"]),
        }

    def _validated_request(self, attempt: _Attempt) -> RegistrationRequest:
        """Parse and check the metadata, reporting upload problems alongside field problems."""
        upload = attempt.upload
        problems: List[RegistrationError] = []
        request = None
        if not _blank(upload.metadata):
            try:
                request = self.parse_request(upload.metadata)
                attempt.advance(RegistrationStage.METADATA_PARSED)
            except MalformedInput as exc:
                problems.append(exc)
        if request is not None:
            field_errors = validate_fields(request, self._min_members, self._max_members)
            if field_errors:
                problems.append(FieldValidation("Validation failed", field_errors))
        problems.extend(upload.errors)
        if request is None and not problems:
            problems.append(MalformedInput("Invalid request", ["Team data is required"]))
        if attempt.temp_path is None and not upload.errors:
            problems.append(FieldValidation("Validation failed",
                                            ["Archive file (ZIP or RAR) is required"]))
        if problems:
            raise combine(problems, problems[0].message)
        attempt.advance(RegistrationStage.FIELDS_VALIDATED)
        return request

    def _persist(self, attempt: _Attempt, request: RegistrationRequest) -> Dict[str, Any]:
        members = [
            {"first_name": m.first_name, "last_name": m.last_name,
             "phone_number": m.phone_number, "display_order": position}
            for position, m in enumerate(request.members, start=1)
        ]
        for n in range(1, self._persist_attempts + 1):
            row = {
                "team_name": request.team_name,
                "sanitized_folder_name": attempt.folder_name,
                "archive_file_name": attempt.archive_path.name,
                "original_file_name": attempt.upload.original_filename,
                "archive_size": attempt.upload.size,
                "created_at": self._clock(),
            }
            try:
                team = self._repo.create_team_with_members(row, members)
            except IntegrityError as exc:
                if n < self._persist_attempts and self._repo.get_team_by_folder(attempt.folder_name):
                    logger.warning("Folder name %s was taken concurrently, reallocating",
                                   attempt.folder_name)
                    self._relocate(attempt, request.team_name)
                    continue
                logger.exception("Error creating team '%s'", request.team_name)
                raise PersistenceFailure("Could not save team", ["Failed to save team data"]) from exc
            except SQLAlchemyError as exc:
                logger.exception("Error creating team '%s'", request.team_name)
                raise PersistenceFailure("Could not save team", ["Failed to save team data"]) from exc
            attempt.team_id = team["id"]
            return team
        raise PersistenceFailure("Could not save team", ["Failed to save team data"])

    def _relocate(self, attempt: _Attempt, team_name: str) -> None:
        old_name, old_path = attempt.folder_name, attempt.folder_path
        new_name, new_path = self.allocate_folder(team_name)
        archive_name = new_name + attempt.archive_path.name[len(old_name):]
        new_archive = new_path / archive_name
        shutil.move(str(attempt.archive_path), str(new_archive))
        attempt.folder_name, attempt.folder_path, attempt.archive_path = new_name, new_path, new_archive
        _remove_tree(old_path)

    def _write_snapshot(self, attempt: _Attempt, team: Dict[str, Any], ext: str) -> None:
        snapshot = {
            "teamId": team["id"],
            "teamName": team["team_name"],
            "sanitizedFolderName": team["sanitized_folder_name"],
            "members": [
                {"firstName": m["first_name"], "lastName": m["last_name"],
                 "phoneNumber": m["phone_number"], "displayOrder": m["display_order"]}
                for m in team["members"]
            ],
            "submittedAt": team["created_at"],
            "archiveFileName": team["archive_file_name"],
            "originalArchiveFileName": team["original_file_name"],
            "archiveFileSize": team["archive_size"],
            "archiveType": ext,
        }
        try:
            with open(attempt.folder_path / SNAPSHOT_FILE, "w", encoding="utf-8") as fh:
                json.dump(snapshot, fh, ensure_ascii=False, indent=2)
        except OSError as exc:
            logger.warning("Could not write %s for team %s: %s", SNAPSHOT_FILE, team["id"], exc)

    # ── Rollback ───────────────────────────────────────────────────────

    def _finish_unsuccessful(self, attempt: _Attempt, exc: RegistrationError) -> None:
        terminal = (RegistrationStage.FAILED
                    if attempt.stage in _COMMITTED_STAGES or not exc.is_client_error
                    else RegistrationStage.REJECTED)
        self._rollback(attempt)
        attempt.advance(terminal)
        REGISTRATIONS_TOTAL.labels(outcome=terminal.value).inc()
        REGISTRATIONS_REJECTED.labels(kind=exc.kind).inc()
        if exc.is_client_error:
            logger.warning("Registration rejected kind=%s errors=%s", exc.kind, exc.errors)

    def _rollback(self, attempt: _Attempt) -> None:
        if attempt.team_id is not None:
            try:
                self._repo.delete_team(attempt.team_id)
            except SQLAlchemyError:
                logger.exception("Compensating delete failed for team %s", attempt.team_id)
            attempt.team_id = None
        if attempt.archive_path is not None:
            _remove_file(attempt.archive_path)
        if attempt.folder_path is not None:
            _remove_tree(attempt.folder_path)
        if attempt.temp_path is not None:
            _remove_file(attempt.temp_path)


def _remove_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Cleanup failed for %s: %s", path, exc)


def _remove_tree(path: Path) -> None:
    try:
        if path.exists():
            shutil.rmtree(path)
    except OSError as exc:
        logger.warning("Cleanup failed for %s: %s", path, exc)
