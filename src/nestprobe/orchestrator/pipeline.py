from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from nestprobe.config import ProbeSettings
from nestprobe.domain.models import GlobalPrefix, RouteDescriptor
from nestprobe.extractors.nestjs.chunker import extract_routes_from_file
from nestprobe.extractors.nestjs.structure import detect_global_prefix, is_excluded
from nestprobe.repo.scanner import scan_ts_files, select_candidate_controller_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalyzeResult:
    workspace: str
    files_scanned: int
    candidate_files: list[str]  # workspace-relative
    routes: list[RouteDescriptor]
    global_prefix: Optional[GlobalPrefix]

    def excluded(self, route: RouteDescriptor) -> bool:
        return self.global_prefix is not None and is_excluded(route.path, self.global_prefix)


def run_analyze(
    workspace: Path,
    max_files: int | None = None,
    settings: Optional[ProbeSettings] = None,
) -> AnalyzeResult:
    workspace = workspace.resolve()
    settings = settings or ProbeSettings()

    ts_files = scan_ts_files(workspace, max_files=max_files)
    candidates = select_candidate_controller_files(ts_files)

    routes: list[RouteDescriptor] = []
    for p in candidates:
        # each file is its own extraction pass with its own resolution state
        file_routes = extract_routes_from_file(
            Path(p),
            workspace_root=workspace,
            max_workspace_files=settings.max_workspace_files,
        )
        logger.debug("%d routes in %s", len(file_routes), p)
        routes.extend(file_routes)

    return AnalyzeResult(
        workspace=str(workspace),
        files_scanned=len(ts_files),
        candidate_files=[os.path.relpath(p, str(workspace)) for p in candidates],
        routes=routes,
        global_prefix=detect_global_prefix(workspace),
    )
