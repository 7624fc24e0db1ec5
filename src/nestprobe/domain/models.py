from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD", "ALL"]

# Query decorator used without a name: the handler accepts arbitrary keys.
ANY_QUERY = "*"


class SourceLocation(BaseModel):
    file: str = ""
    line: int = 1  # 1-based


class RouteDescriptor(BaseModel):
    method: HttpMethod
    path: str
    handler_name: str
    source_location: SourceLocation = Field(default_factory=SourceLocation)
    controller_prefix: str = ""

    path_params: list[str] = Field(default_factory=list)
    query_params: list[str] = Field(default_factory=list)
    has_body: bool = False
    body_type_name: Optional[str] = None
    body_example: Optional[str] = None

    @field_validator("path")
    @classmethod
    def _path_is_rooted(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    @field_validator("path_params", "query_params")
    @classmethod
    def _dedupe(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def _example_requires_body(self) -> "RouteDescriptor":
        if self.body_example is not None and not self.has_body:
            raise ValueError("body_example is only valid on routes with a body")
        return self

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"


class GlobalPrefix(BaseModel):
    """`app.setGlobalPrefix(prefix, { exclude })` as found in the bootstrap file."""

    prefix: str
    excludes: list[str] = Field(default_factory=list)
    file_path: str = ""
