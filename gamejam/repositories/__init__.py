# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Repository package: re-exports TeamRepository."""
from gamejam.repositories.team_repository import TeamRepository

__all__ = ["TeamRepository"]
