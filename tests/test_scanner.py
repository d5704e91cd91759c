from pathlib import Path

import pytest

from declscan.helpers import compute_file_hash, load_gitignores, matches_gitignore, parse_gitignore
from declscan.scanner import collect_source_files, scan_directory
from declscan.settings import ExtractSettings, ProbeType


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------
def _write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def _make_tree(root: Path) -> None:
    _write(root, "src/a.ts", 'import { b } from "./b";\nexport const a = b + 1;\n')
    _write(root, "src/b.ts", "export const b = 1;\n")
    _write(root, "src/view.tsx", "export const View = () => <div />;\n")
    _write(root, "src/broken.ts", "export const = ;\n")
    _write(root, "src/notes.md", "# not source\n")
    _write(root, "node_modules/pkg/index.ts", "export const ignored = 1;\n")
    _write(root, "gen/out.ts", "export const generated = 1;\n")
    _write(root, ".gitignore", "gen/\n")


# ---------------------------------------------------------------------------
# tests
# ---------------------------------------------------------------------------
def test_collect_source_files_respects_ignores(tmp_path: Path):
    _make_tree(tmp_path)
    files = collect_source_files(tmp_path, ExtractSettings())
    rel = [p.relative_to(tmp_path).as_posix() for p in files]
    assert rel == ["src/a.ts", "src/b.ts", "src/broken.ts", "src/view.tsx"]


def test_nested_gitignore_is_scoped(tmp_path: Path):
    _write(tmp_path, "pkg/.gitignore", "*.gen.ts\n/local.ts\n")
    spec = parse_gitignore(tmp_path / "pkg" / ".gitignore", root_dir=tmp_path)
    assert matches_gitignore("pkg/deep/x.gen.ts", spec)
    assert matches_gitignore("pkg/local.ts", spec)
    assert not matches_gitignore("other/x.gen.ts", spec)
    assert not matches_gitignore("pkg/deep/local.ts", spec)

    combined = load_gitignores(tmp_path)
    assert matches_gitignore("pkg/a.gen.ts", combined)


@pytest.mark.asyncio
async def test_scan_directory(tmp_path: Path):
    _make_tree(tmp_path)
    settings = ExtractSettings(scanner_num_workers=2)
    progress = []

    result = await scan_directory(tmp_path, settings, lambda done, total: progress.append((done, total)))

    assert [f.path for f in result.files] == ["src/a.ts", "src/b.ts", "src/view.tsx"]
    assert list(result.errors) == ["src/broken.ts"]
    assert result.errors["src/broken.ts"].startswith("Failed to parse TypeScript code:")
    assert progress[-1] == (4, 4)

    a = result.files[0]
    assert a.file_hash == compute_file_hash(tmp_path / "src" / "a.ts")
    assert [d.name for d in a.declarations] == ["a"]
    assert a.declarations[0].dependencies[0].file_path == "src/b"


@pytest.mark.asyncio
async def test_scan_directory_with_path_probe(tmp_path: Path):
    _make_tree(tmp_path)
    settings = ExtractSettings()
    settings.resolver.probe = ProbeType.PATH
    settings.resolver.workspace_dir = str(tmp_path)

    result = await scan_directory(tmp_path, settings)
    a = next(f for f in result.files if f.path == "src/a.ts")
    assert a.declarations[0].dependencies[0].file_path == "src/b.ts"


@pytest.mark.asyncio
async def test_scan_missing_root(tmp_path: Path):
    result = await scan_directory(tmp_path / "nope")
    assert result.files == []
    assert result.errors == {}
