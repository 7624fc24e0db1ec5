from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from nestprobe.config import ProbeSettings, SettingsError
from nestprobe.domain.models import RouteDescriptor
from nestprobe.export.http_file import (
    default_draft,
    http_filename,
    render_curl,
    render_http_request,
)
from nestprobe.extractors.nestjs.chunker import extract_routes_from_file
from nestprobe.extractors.nestjs.structure import detect_global_prefix
from nestprobe.extractors.nestjs.syntax import parse_file
from nestprobe.orchestrator.pipeline import run_analyze
from nestprobe.resolve.examples import BodyExampleResolver
from nestprobe.resolve.locator import TypeLocator

app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log the type-resolution trail"),
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


def _existing_file(path: str) -> Path:
    p = Path(path).expanduser().resolve()
    if not p.is_file():
        raise typer.BadParameter(f"File does not exist: {p}")
    return p


def _workspace_dir(path: Optional[str]) -> Path:
    p = Path(path).expanduser().resolve() if path else Path.cwd().resolve()
    if not p.is_dir():
        raise typer.BadParameter(f"Workspace is not a directory: {p}")
    return p


def _load_settings(workspace: Path) -> ProbeSettings:
    try:
        return ProbeSettings.load(workspace)
    except SettingsError as e:
        raise typer.BadParameter(str(e)) from e


def _route_rows(routes: list[RouteDescriptor]) -> list[dict]:
    return [r.model_dump() for r in routes]


def _print_routes_table(routes: list[RouteDescriptor], workspace: Path) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("HANDLER")
    table.add_column("PARAMS")
    table.add_column("BODY")
    table.add_column("FILE:LINE", no_wrap=True)

    for r in routes:
        params = ", ".join([f":{p}" for p in r.path_params] + [f"?{q}" for q in r.query_params])
        body = (r.body_type_name or "inline") if r.has_body else ""
        file_path = r.source_location.file
        try:
            file_path = str(Path(file_path).relative_to(workspace))
        except ValueError:
            pass
        table.add_row(r.method, r.path, r.handler_name, params, body, f"{file_path}:{r.source_location.line}")

    console.print(table)


@app.command()
def routes(
    file: str = typer.Argument(..., help="TypeScript controller file"),
    workspace: Optional[str] = typer.Option(None, help="Workspace root for type lookup (default: cwd)"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    path = _existing_file(file)
    ws = _workspace_dir(workspace)
    settings = _load_settings(ws)

    found = extract_routes_from_file(path, workspace_root=ws, max_workspace_files=settings.max_workspace_files)

    if format.lower() == "json":
        console.print_json(json.dumps(_route_rows(found)))
        return

    console.print(f"[bold]Routes:[/bold] {len(found)} in {path}")
    _print_routes_table(found, ws)
    for r in found:
        if r.body_example:
            console.print("")
            console.print(f"[bold]{r.method} {r.path}[/bold] body ({r.body_type_name or 'inline'}):")
            console.print(r.body_example, markup=False, highlight=False, soft_wrap=True)


@app.command()
def analyze(
    workspace: str = typer.Argument(..., help="Path to the NestJS workspace"),
    max_files: Optional[int] = typer.Option(None, help="Limit scanned files (debug)"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    ws = _workspace_dir(workspace)
    settings = _load_settings(ws)
    result = run_analyze(ws, max_files=max_files, settings=settings)

    if format.lower() == "json":
        payload = {
            "workspace": result.workspace,
            "global_prefix": result.global_prefix.model_dump() if result.global_prefix else None,
            "routes": _route_rows(result.routes),
        }
        console.print_json(json.dumps(payload))
        return

    console.print(f"[bold green]nestprobe[/bold green] analyze: {ws}")
    console.print(f"TypeScript files scanned: {result.files_scanned}")
    console.print(f"Controller files: {len(result.candidate_files)}")
    if result.global_prefix is not None:
        gp = result.global_prefix
        excludes = ", ".join(gp.excludes) or "-"
        console.print(f"Global prefix: [bold]{gp.prefix}[/bold] (exclude: {excludes})")
    else:
        console.print("Global prefix: none detected")
    console.print("")
    console.print(f"Routes found: [bold]{len(result.routes)}[/bold]")
    _print_routes_table(result.routes, ws)


@app.command()
def example(
    type_name: str = typer.Argument(..., help="Type name, e.g. CreateUserDto"),
    from_file: str = typer.Option(..., "--from", help="File the type is referenced from"),
    workspace: Optional[str] = typer.Option(None, help="Workspace root for type lookup (default: cwd)"),
) -> None:
    path = _existing_file(from_file)
    ws = _workspace_dir(workspace)
    settings = _load_settings(ws)

    doc = parse_file(path)
    if doc is None:
        raise typer.BadParameter(f"Cannot read {path}")
    locator = TypeLocator(ws, max_workspace_files=settings.max_workspace_files)
    console.print(BodyExampleResolver(locator).for_type_name(type_name, doc), markup=False, highlight=False, soft_wrap=True)


@app.command()
def prefix(
    workspace: str = typer.Argument(..., help="Path to the NestJS workspace"),
) -> None:
    ws = _workspace_dir(workspace)
    gp = detect_global_prefix(ws)
    if gp is None:
        console.print("No global prefix detected.")
        return
    console.print(f"Global prefix: [bold]{gp.prefix}[/bold] ({gp.file_path})")
    for entry in gp.excludes:
        console.print(f"  exclude: {entry}")


@app.command("export")
def export_requests(
    file: str = typer.Argument(..., help="TypeScript controller file"),
    handler: Optional[str] = typer.Option(None, help="Only the route handled by this method"),
    workspace: Optional[str] = typer.Option(None, help="Workspace root (default: cwd)"),
    base_url: Optional[str] = typer.Option(None, help="Override the configured base URL"),
    curl: bool = typer.Option(False, help="Emit curl commands instead of .http blocks"),
    out: Optional[str] = typer.Option(None, help="Output path (default: print to stdout)"),
) -> None:
    path = _existing_file(file)
    ws = _workspace_dir(workspace)
    settings = _load_settings(ws)
    if base_url:
        settings = settings.model_copy(update={"base_url": base_url})

    found = extract_routes_from_file(path, workspace_root=ws, max_workspace_files=settings.max_workspace_files)
    if handler:
        found = [r for r in found if r.handler_name == handler]
    if not found:
        raise typer.BadParameter("No matching routes in file")

    detected = detect_global_prefix(ws)

    blocks = []
    for r in found:
        draft = default_draft(r, settings, detected)
        blocks.append(render_curl(r.method, draft) if curl else render_http_request(r.method, draft))
    text = "\n".join(blocks)

    # existing directory: one .http file per route
    if out and Path(out).expanduser().is_dir():
        if curl:
            raise typer.BadParameter("--curl output needs a file path, not a directory")
        out_dir = Path(out).expanduser()
        for r, block in zip(found, blocks):
            (out_dir / http_filename(r.method, r.path)).write_text(block, encoding="utf-8")
        console.print(f"[bold green]Wrote[/bold green] {len(blocks)} file(s) to: {out_dir}")
        return

    if out:
        out_path = Path(out).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        console.print(f"[bold green]Wrote[/bold green] {len(blocks)} request(s) to: {out_path}")
    else:
        console.print(text, markup=False, highlight=False, soft_wrap=True)


@app.command()
def ping() -> None:
    console.print("pong")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
