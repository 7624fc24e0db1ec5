from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from nestprobe.resolve.locator import DEFAULT_MAX_WORKSPACE_FILES


class SettingsError(Exception):
    """Settings file exists but cannot be read or validated."""


class ProbeSettings(BaseModel):
    """
    Workspace settings for the request-building side (base URL, headers,
    manual global prefix) plus the workspace scan cap for type lookup.
    """

    base_url: str = "http://localhost:3000"
    default_headers: list[str] = Field(default_factory=lambda: ["Content-Type: application/json"])
    # manual override; wins over the detected setGlobalPrefix()
    global_prefix: str = ""
    max_workspace_files: int = DEFAULT_MAX_WORKSPACE_FILES

    @field_validator("max_workspace_files")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_workspace_files must be >= 1")
        return v

    @staticmethod
    def path_for_workspace(workspace: Path) -> Path:
        return workspace / ".nestprobe" / "settings.json"

    @classmethod
    def load(cls, workspace: Path) -> "ProbeSettings":
        path = cls.path_for_workspace(workspace)
        if not path.is_file():
            return cls()
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise SettingsError(f"Cannot read {path}: {e}") from e
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise SettingsError(f"Invalid settings in {path}: {e}") from e

    def save(self, workspace: Path) -> Path:
        path = self.path_for_workspace(workspace)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path
