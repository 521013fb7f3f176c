"""
TeamRepository: store round trips on a temporary SQLite file.
"""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError

from gamejam.core.config import settings
from gamejam.core.database import build_engine
from gamejam.repositories import TeamRepository

T0 = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'repo.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def repo(engine):
    repository = TeamRepository(engine, attempts=3, backoff_base=0)
    repository.ensure_schema()
    return repository


def _create(repo, folder, phones=("09120000001",), created_at=T0):
    team = {
        "team_name": folder.replace("_", " "),
        "sanitized_folder_name": folder,
        "archive_file_name": f"{folder}_20260301_120000.zip",
        "original_file_name": "game.zip",
        "archive_size": 2048,
        "created_at": created_at,
    }
    members = [
        {"first_name": "Sara", "last_name": "Ahmadi", "phone_number": phone, "display_order": i}
        for i, phone in enumerate(phones, start=1)
    ]
    return repo.create_team_with_members(team, members)


class TestWrite:
    def test_create_returns_stored_team(self, repo):
        team = _create(repo, "Pixel_Pioneers", ("09120000001", "09120000002"))
        assert isinstance(team["id"], int)
        assert team["created_at"] == T0.isoformat()
        assert team["is_active"] is True
        assert [m["phone_number"] for m in team["members"]] == ["09120000001", "09120000002"]

    def test_folder_name_is_unique(self, repo):
        _create(repo, "Alpha", ("09120000001",))
        with pytest.raises(IntegrityError):
            _create(repo, "Alpha", ("09120000002",))
        # The failed insert left no orphan members behind
        assert not repo.exists_by_phone("09120000002")

    def test_delete_removes_members(self, repo, engine):
        team = _create(repo, "Alpha", ("09120000001", "09120000002"))
        repo.delete_team(team["id"])
        assert repo.get_team_by_folder("Alpha") is None
        with engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM team_members")).scalar() == 0


class TestRead:
    def test_exists_checks(self, repo):
        _create(repo, "Alpha", ("09120000001",))
        assert repo.exists_by_folder_name("Alpha")
        assert not repo.exists_by_folder_name("alpha_1")
        assert repo.exists_by_phone("09120000001")
        assert not repo.exists_by_phone("09120000002")

    def test_get_team_by_folder_orders_members(self, repo):
        _create(repo, "Alpha", ("09120000003", "09120000001", "09120000002"))
        team = repo.get_team_by_folder("Alpha")
        assert [m["display_order"] for m in team["members"]] == [1, 2, 3]
        assert [m["phone_number"] for m in team["members"]] == [
            "09120000003", "09120000001", "09120000002",
        ]
        assert team["created_at"] == T0.isoformat()

    def test_list_newest_first_ties_by_id(self, repo):
        _create(repo, "Old", ("09120000001",), created_at=T0 - timedelta(days=1))
        _create(repo, "Tie_A", ("09120000002",))
        _create(repo, "Tie_B", ("09120000003", "09120000004"))
        teams = repo.list_teams()
        assert [t["sanitized_folder_name"] for t in teams] == ["Tie_B", "Tie_A", "Old"]
        assert [len(t["members"]) for t in teams] == [2, 1, 1]

    def test_list_empty(self, repo):
        assert repo.list_teams() == []


class TestRetry:
    def test_transient_failure_retried(self, repo):
        operation = MagicMock(side_effect=[
            OperationalError("SELECT 1", {}, Exception("server closed the connection")),
            "ok",
        ])
        assert repo._retrying(operation) == "ok"
        assert operation.call_count == 2

    def test_gives_up_after_attempts(self, repo):
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))
        operation = MagicMock(side_effect=error)
        with pytest.raises(OperationalError):
            repo._retrying(operation)
        assert operation.call_count == 3

    def test_integrity_errors_not_retried(self, repo):
        operation = MagicMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate")))
        with pytest.raises(IntegrityError):
            repo._retrying(operation)
        assert operation.call_count == 1

    @pytest.mark.parametrize("attempts", [1, 0])
    def test_explicit_attempts_honoured(self, engine, attempts):
        single = TeamRepository(engine, attempts=attempts, backoff_base=0)
        operation = MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("refused")))
        with pytest.raises(OperationalError):
            single._retrying(operation)
        assert operation.call_count == 1

    def test_default_attempts_from_settings(self, engine, monkeypatch):
        monkeypatch.setattr(settings, "DB_RETRY_ATTEMPTS", 2)
        repository = TeamRepository(engine, backoff_base=0)
        operation = MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("refused")))
        with pytest.raises(OperationalError):
            repository._retrying(operation)
        assert operation.call_count == 2


class TestLifecycle:
    def test_verify_connection(self, repo):
        repo.verify_connection()

    def test_ensure_schema_is_repeatable(self, repo):
        repo.ensure_schema()
        assert repo.list_teams() == []
