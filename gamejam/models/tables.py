# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Table definitions for teams and their members.
Used for schema creation and inserts; reads go through plain SQL.
"""

from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, ForeignKey, Index, Integer,
    MetaData, String, Table, UniqueConstraint,
)

metadata = MetaData()

teams = Table(
    "teams",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("team_name", String(100), nullable=False, index=True),
    Column("sanitized_folder_name", String(100), nullable=False),
    Column("archive_file_name", String(255)),
    Column("original_file_name", String(255)),
    Column("archive_size", BigInteger),
    Column("created_at", DateTime, nullable=False, index=True),
    Column("updated_at", DateTime),
    Column("is_active", Boolean, nullable=False, default=True),
    UniqueConstraint("sanitized_folder_name", name="uq_teams_sanitized_folder_name"),
)

team_members = Table(
    "team_members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("team_id", Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("phone_number", String(11), nullable=False, index=True),
    Column("display_order", Integer, nullable=False),
    Column("created_at", DateTime, nullable=False),
    Index("ix_team_members_team_order", "team_id", "display_order"),
)
