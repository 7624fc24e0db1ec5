import textwrap
from pathlib import Path

from nestprobe.repo.scanner import declares_type, scan_ts_files, select_candidate_controller_files


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def test_scan_ts_files_skips_dependency_and_build_dirs(tmp_path: Path):
    write(tmp_path / "src" / "app.controller.ts", "@Controller()\nexport class AppController {}\n")
    write(tmp_path / "src" / "view.tsx", "export {};\n")
    write(tmp_path / "src" / "notes.md", "# notes\n")
    write(tmp_path / "node_modules" / "pkg" / "index.ts", "export {};\n")
    write(tmp_path / "dist" / "main.ts", "export {};\n")

    files = scan_ts_files(tmp_path)
    names = [Path(p).relative_to(tmp_path.resolve()).as_posix() for p in files]
    assert names == ["src/app.controller.ts", "src/view.tsx"]


def test_scan_ts_files_respects_cap(tmp_path: Path):
    for i in range(5):
        write(tmp_path / f"f{i}.ts", "export {};\n")
    assert len(scan_ts_files(tmp_path, max_files=3)) == 3


def test_select_candidate_controller_files(tmp_path: Path):
    write(tmp_path / "a.controller.ts", "@Controller('a')\nexport class A {}\n")
    write(tmp_path / "b.service.ts", "export class B {}\n")
    files = scan_ts_files(tmp_path)

    selected = select_candidate_controller_files(files)
    assert [Path(p).name for p in selected] == ["a.controller.ts"]


def test_declares_type_prefilter():
    assert declares_type("export class CreateUserDto {}", "CreateUserDto")
    assert declares_type("export declare abstract class Base {}", "Base")
    assert declares_type("type Alias = string;", "Alias")
    assert not declares_type("const x: CreateUserDto = y;", "CreateUserDto")
    assert not declares_type("export class CreateUserDtoV2 {}", "CreateUserDto")
