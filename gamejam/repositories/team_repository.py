# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Data-access layer for teams and their members."""
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from gamejam.core.config import settings
from gamejam.core.logging import get_logger
from gamejam.models.tables import metadata, team_members, teams

logger = get_logger(__name__)

TEAM_COLS = (
    "id, team_name, sanitized_folder_name, archive_file_name, original_file_name, "
    "archive_size, created_at, updated_at, is_active"
)
MEMBER_COLS = "team_id, first_name, last_name, phone_number, display_order"


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        # SQLite hands back raw text for untyped columns
        return datetime.fromisoformat(value).isoformat()
    return value.isoformat()


def _team_row_to_dict(row) -> Dict[str, Any]:
    return {
        "id": row[0],
        "team_name": row[1],
        "sanitized_folder_name": row[2],
        "archive_file_name": row[3],
        "original_file_name": row[4],
        "archive_size": row[5],
        "created_at": _iso(row[6]),
        "updated_at": _iso(row[7]),
        "is_active": bool(row[8]),
        "members": [],
    }


def _member_row_to_dict(row) -> Dict[str, Any]:
    return {
        "first_name": row[1],
        "last_name": row[2],
        "phone_number": row[3],
        "display_order": row[4],
    }


class TeamRepository:
    def __init__(self, engine: Engine, attempts: int = None,
                 backoff_base: float = None, max_delay: float = None):
        self._engine = engine
        # At least one try, even when retries are configured off
        self._attempts = max(1, settings.DB_RETRY_ATTEMPTS if attempts is None else attempts)
        self._backoff_base = settings.DB_RETRY_BACKOFF_BASE if backoff_base is None else backoff_base
        self._max_delay = settings.DB_RETRY_MAX_DELAY if max_delay is None else max_delay

    # ── Write ──────────────────────────────────────────────────────────

    def create_team_with_members(self, team: Dict[str, Any],
                                 members: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Insert the team and its ordered members as one transaction."""

        def _insert():
            with self._engine.begin() as conn:
                result = conn.execute(teams.insert().values(
                    team_name=team["team_name"],
                    sanitized_folder_name=team["sanitized_folder_name"],
                    archive_file_name=team["archive_file_name"],
                    original_file_name=team["original_file_name"],
                    archive_size=team["archive_size"],
                    created_at=team["created_at"],
                    is_active=True,
                ))
                team_id = result.inserted_primary_key[0]
                conn.execute(team_members.insert(), [
                    {
                        "team_id": team_id,
                        "first_name": m["first_name"],
                        "last_name": m["last_name"],
                        "phone_number": m["phone_number"],
                        "display_order": m["display_order"],
                        "created_at": team["created_at"],
                    }
                    for m in members
                ])
            return team_id

        team_id = self._retrying(_insert)
        return {
            **team,
            "id": team_id,
            "created_at": team["created_at"].isoformat(),
            "updated_at": None,
            "is_active": True,
            "members": [dict(m) for m in members],
        }

    def delete_team(self, team_id: int) -> None:
        def _delete():
            with self._engine.begin() as conn:
                conn.execute(text("DELETE FROM team_members WHERE team_id = :id"), {"id": team_id})
                conn.execute(text("DELETE FROM teams WHERE id = :id"), {"id": team_id})

        self._retrying(_delete)

    # ── Read ───────────────────────────────────────────────────────────

    def exists_by_folder_name(self, folder_name: str) -> bool:
        def _query():
            with self._engine.connect() as conn:
                return conn.execute(
                    text("SELECT 1 FROM teams WHERE sanitized_folder_name = :f"),
                    {"f": folder_name},
                ).fetchone() is not None

        return self._retrying(_query)

    def exists_by_phone(self, phone_number: str) -> bool:
        def _query():
            with self._engine.connect() as conn:
                return conn.execute(
                    text("SELECT 1 FROM team_members WHERE phone_number = :p"),
                    {"p": phone_number},
                ).fetchone() is not None

        return self._retrying(_query)

    def get_team_by_folder(self, folder_name: str) -> Optional[Dict[str, Any]]:
        def _query():
            with self._engine.connect() as conn:
                row = conn.execute(
                    text(f"SELECT {TEAM_COLS} FROM teams WHERE sanitized_folder_name = :f"),
                    {"f": folder_name},
                ).fetchone()
                if not row:
                    return None
                team = _team_row_to_dict(row)
                member_rows = conn.execute(
                    text(f"SELECT {MEMBER_COLS} FROM team_members "
                         "WHERE team_id = :id ORDER BY display_order"),
                    {"id": team["id"]},
                ).fetchall()
            team["members"] = [_member_row_to_dict(m) for m in member_rows]
            return team

        return self._retrying(_query)

    def list_teams(self) -> List[Dict[str, Any]]:
        """All teams, newest first, each with its members in submission order."""

        def _query():
            with self._engine.connect() as conn:
                team_rows = conn.execute(
                    text(f"SELECT {TEAM_COLS} FROM teams ORDER BY created_at DESC, id DESC")
                ).fetchall()
                member_rows = conn.execute(
                    text(f"SELECT {MEMBER_COLS} FROM team_members ORDER BY team_id, display_order")
                ).fetchall()
            by_team: Dict[int, List[Dict[str, Any]]] = {}
            for m in member_rows:
                by_team.setdefault(m[0], []).append(_member_row_to_dict(m))
            result = []
            for row in team_rows:
                team = _team_row_to_dict(row)
                team["members"] = by_team.get(team["id"], [])
                result.append(team)
            return result

        return self._retrying(_query)

    # ── Lifecycle ──────────────────────────────────────────────────────

    def ensure_schema(self):
        metadata.create_all(self._engine)

    def verify_connection(self):
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def dispose(self):
        self._engine.dispose()

    # ── Private ────────────────────────────────────────────────────────

    def _retrying(self, operation: Callable[[], Any]) -> Any:
        """Run ``operation``, retrying transient connectivity failures with capped backoff."""
        for attempt in range(1, self._attempts + 1):
            try:
                return operation()
            except OperationalError as exc:
                if attempt >= self._attempts:
                    raise
                delay = min(self._backoff_base * (2 ** (attempt - 1)), self._max_delay)
                logger.warning("Store operation failed (attempt %d/%d), retrying in %.1fs: %s",
                               attempt, self._attempts, delay, exc)
                time.sleep(delay)
