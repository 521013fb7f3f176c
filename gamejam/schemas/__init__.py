# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Pydantic request/response schemas. camelCase on the wire, snake_case in code."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


def _fold_keys(model: type, data: Any) -> Any:
    """Bind JSON keys to fields regardless of their casing."""
    if not isinstance(data, dict):
        return data
    lookup: Dict[str, str] = {}
    for name in model.model_fields:
        alias = to_camel(name)
        lookup[alias.lower()] = alias
        lookup[name.lower()] = alias
    folded: Dict[Any, Any] = {}
    for key, value in data.items():
        target = lookup.get(key.lower()) if isinstance(key, str) else None
        folded[target or key] = value
    return folded


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Request ──────────────────────────────────────────────────────────────

class MemberInput(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def fold_keys(cls, data: Any) -> Any:
        return _fold_keys(cls, data)


class RegistrationRequest(CamelModel):
    team_name: Optional[str] = None
    members: Optional[List[MemberInput]] = None

    @model_validator(mode="before")
    @classmethod
    def fold_keys(cls, data: Any) -> Any:
        return _fold_keys(cls, data)


# ── Response ─────────────────────────────────────────────────────────────

class RegistrationData(CamelModel):
    team_id: int
    team_name: str
    folder_name: str
    member_count: int


class MemberSummary(CamelModel):
    first_name: str
    last_name: str
    phone_number: str


class TeamSummary(CamelModel):
    id: int
    team_name: str
    sanitized_folder_name: str
    member_count: int
    members: List[MemberSummary] = []
    created_at: Optional[str] = None
    archive_file_name: Optional[str] = None
    archive_type: str = ""


class ApiResponse(CamelModel):
    success: bool
    message: str = ""
    data: Optional[Any] = None
    errors: List[str] = []

    def to_content(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
