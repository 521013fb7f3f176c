# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
FastAPI dependency injection: wire repository, pipeline and services.
"""

from gamejam.core.config import settings
from gamejam.core.database import engine
from gamejam.repositories.team_repository import TeamRepository
from gamejam.services.archive_validator import ArchiveValidator
from gamejam.services.multipart_ingest import MultipartIngestPipeline
from gamejam.services.registration_service import RegistrationService

# ── Singletons ──
_repo = TeamRepository(engine)
_archive_validator = ArchiveValidator()
_ingest_pipeline = MultipartIngestPipeline(
    temp_dir=settings.UPLOAD_TMP_DIR,
    max_upload_bytes=settings.MAX_UPLOAD_BYTES,
    metadata_max_bytes=settings.METADATA_MAX_BYTES,
    metadata_field=settings.METADATA_FIELD,
    archive_field=settings.ARCHIVE_FIELD,
    allowed_extensions=settings.ALLOWED_ARCHIVE_EXTENSIONS,
)
_registration_service = RegistrationService(
    repo=_repo,
    archive_validator=_archive_validator,
    uploads_root=settings.UPLOADS_ROOT,
    folder_max_length=settings.FOLDER_NAME_MAX_LENGTH,
    min_members=settings.MIN_MEMBERS,
    max_members=settings.MAX_MEMBERS,
    persist_attempts=settings.PERSIST_ATTEMPTS,
)


# ── FastAPI dependency functions ──
def get_team_repo() -> TeamRepository:
    return _repo


def get_ingest_pipeline() -> MultipartIngestPipeline:
    return _ingest_pipeline


def get_registration_service() -> RegistrationService:
    return _registration_service
