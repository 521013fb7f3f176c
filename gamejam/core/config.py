# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Registration service settings, read from the environment once at import.
"""

import os
from pathlib import Path


class Settings:
    """Application settings loaded from environment variables."""

    SERVICE_NAME: str = os.getenv("SERVICE_NAME", "gamejam-registration")
    SERVICE_VERSION: str = os.getenv("SERVICE_VERSION", "1.0.0")
    SERVICE_PORT: int = int(os.getenv("SERVICE_PORT", "8080"))

    # ── Store ──
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./gamejam.db")
    POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "300"))
    DB_RETRY_ATTEMPTS: int = int(os.getenv("DB_RETRY_ATTEMPTS", "5"))
    DB_RETRY_BACKOFF_BASE: float = float(os.getenv("DB_RETRY_BACKOFF_BASE", "0.5"))
    DB_RETRY_MAX_DELAY: float = float(os.getenv("DB_RETRY_MAX_DELAY", "30"))
    AUTO_CREATE_SCHEMA: bool = os.getenv("AUTO_CREATE_SCHEMA", "true").lower() == "true"
    SCHEMA_INIT_ATTEMPTS: int = int(os.getenv("SCHEMA_INIT_ATTEMPTS", "10"))
    SCHEMA_INIT_DELAY: float = float(os.getenv("SCHEMA_INIT_DELAY", "5"))

    # ── Uploads ──
    UPLOADS_ROOT: Path = Path(os.getenv("UPLOADS_ROOT", "./Uploads")).resolve()
    UPLOAD_TMP_DIR: Path = Path(
        os.getenv("UPLOAD_TMP_DIR", str(UPLOADS_ROOT / ".incoming"))
    ).resolve()
    # 3 GiB streaming ceiling; 100 MiB is the stricter form-bound policy.
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(3 * 1024 ** 3)))
    METADATA_MAX_BYTES: int = int(os.getenv("METADATA_MAX_BYTES", str(64 * 1024)))
    METADATA_FIELD: str = os.getenv("METADATA_FIELD", "teamData")
    ARCHIVE_FIELD: str = os.getenv("ARCHIVE_FIELD", "archiveFile")
    ALLOWED_ARCHIVE_EXTENSIONS: tuple = (".zip", ".rar")

    # ── Registration rules ──
    MIN_MEMBERS: int = 1
    MAX_MEMBERS: int = 4
    FOLDER_NAME_MAX_LENGTH: int = 50
    PERSIST_ATTEMPTS: int = int(os.getenv("PERSIST_ATTEMPTS", "3"))

    CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
