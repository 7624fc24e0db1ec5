from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote

from nestprobe.config import ProbeSettings
from nestprobe.domain.models import ANY_QUERY, GlobalPrefix, RouteDescriptor
from nestprobe.extractors.nestjs.paths import join_path
from nestprobe.extractors.nestjs.structure import is_excluded

_SAFE = re.compile(r"[^\w\-]+")
_AUTH_HEADER = re.compile(r"^Authorization\s*:", re.IGNORECASE)

# methods whose requests never carry a body
_BODYLESS = {"GET", "HEAD"}


@dataclass
class RequestDraft:
    """Everything the user can fill in before issuing a request for a route."""

    base_url: str
    path: str
    path_params: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    headers: list[str] = field(default_factory=list)
    bearer_token: Optional[str] = None
    body_text: str = ""
    apply_global: bool = False
    global_prefix: str = ""


def effective_global_prefix(settings: ProbeSettings, detected: Optional[GlobalPrefix]) -> str:
    if settings.global_prefix:
        return settings.global_prefix
    return detected.prefix if detected is not None else ""


def default_draft(
    route: RouteDescriptor,
    settings: ProbeSettings,
    detected: Optional[GlobalPrefix] = None,
) -> RequestDraft:
    prefix = effective_global_prefix(settings, detected)
    apply_global = bool(prefix) and not (detected is not None and is_excluded(route.path, detected))
    return RequestDraft(
        base_url=settings.base_url,
        path=route.path,
        path_params={name: "" for name in route.path_params},
        query={name: "" for name in route.query_params if name != ANY_QUERY},
        headers=list(settings.default_headers),
        body_text=route.body_example or "",
        apply_global=apply_global,
        global_prefix=prefix,
    )


def replace_path_params(path: str, values: dict[str, str]) -> str:
    """`:id` -> value; params without a value keep their token."""
    out = path
    for key, value in (values or {}).items():
        out = re.sub(rf":{re.escape(key)}\b", lambda _m, v=value, k=key: v or f":{k}", out)
    return out


def join_url(base: str, path: str) -> str:
    if base.endswith("/") and path.startswith("/"):
        return base[:-1] + path
    if not base.endswith("/") and not path.startswith("/"):
        return f"{base}/{path}"
    return base + path


def build_query_string(values: dict[str, str]) -> str:
    parts = []
    for k, v in (values or {}).items():
        if k and v is not None and str(v):
            parts.append(f"{_encode(k)}={_encode(str(v))}")
    return "&".join(parts)


def _encode(text: str) -> str:
    # same unreserved set as JavaScript's encodeURIComponent
    return quote(text, safe="-_.!~*'()")


def normalize_headers(items: list[str]) -> list[str]:
    out: list[str] = []
    for item in items:
        s = item.strip()
        if s and s not in out:
            out.append(s)
    return out


def full_path(draft: RequestDraft) -> str:
    prefix = draft.global_prefix if draft.apply_global and draft.global_prefix else ""
    return join_path(prefix, replace_path_params(draft.path, draft.path_params))


def full_url(draft: RequestDraft) -> str:
    qs = build_query_string(draft.query)
    url = join_url(draft.base_url, full_path(draft))
    return f"{url}?{qs}" if qs else url


def request_headers(draft: RequestDraft) -> list[str]:
    headers = normalize_headers(draft.headers)
    if draft.bearer_token and not any(_AUTH_HEADER.match(h) for h in headers):
        headers.append(f"Authorization: Bearer {draft.bearer_token}")
    return headers


def render_http_request(method: str, draft: RequestDraft) -> str:
    """
    REST-client text block:
      ### POST /api/users
      POST http://localhost:3000/api/users
      Content-Type: application/json

      {...}
    """
    body = draft.body_text if method not in _BODYLESS and draft.body_text.strip() else ""
    headers = "\n".join(request_headers(draft))
    return f"### {method} {full_path(draft)}\n{method} {full_url(draft)}\n{headers}\n\n{body}\n"


def render_curl(method: str, draft: RequestDraft) -> str:
    parts = [f'curl -i -X {method} "{full_url(draft)}"']
    for h in request_headers(draft):
        escaped = h.replace('"', '\\"')
        parts.append(f'-H "{escaped}"')
    if method not in _BODYLESS and draft.body_text.strip():
        escaped = draft.body_text.replace("'", "'\\''")
        parts.append(f"-d '{escaped}'")
    return " ".join(parts)


def sanitize(path: str) -> str:
    return _SAFE.sub("_", path)


def http_filename(method: str, path: str) -> str:
    return f"request_{method}_{sanitize(path)}.http"
