import hashlib
from pathlib import Path
from typing import Iterable

import pathspec

from declscan.logger import logger


def compute_file_hash(abs_path: str | Path) -> str:
    """Compute SHA256 hash of a file's contents."""
    sha256 = hashlib.sha256()
    with open(abs_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def _scope_pattern(pattern: str, prefix: str) -> str:
    """
    Rewrite one pattern from a nested .gitignore so it is relative to the
    scan root:
      - '/pat'      -> '<subdir>/pat'
      - 'pat'       -> '<subdir>/**/pat'
      - 'dir/pat'   -> '<subdir>/dir/pat'
    """
    pat = pattern.replace("\\", "/")
    if pat.startswith("/"):
        return prefix + pat.lstrip("/")
    if "/" in pat.rstrip("/"):
        return prefix + pat
    return f"{prefix}**/{pat}"


def parse_gitignore(
    gitignore_path: str | Path, *, root_dir: str | Path | None = None
) -> pathspec.PathSpec:
    """
    Parse a .gitignore file into a 'gitwildmatch' PathSpec. With *root_dir*
    the patterns of a nested file are scoped to its own directory.
    """
    gitignore_file = Path(gitignore_path)
    if not gitignore_file.is_file():
        return pathspec.PathSpec.from_lines("gitwildmatch", [])

    lines: list[str] = []
    for raw in gitignore_file.read_text(encoding="utf-8", errors="replace").splitlines():
        raw = raw.rstrip()
        if not raw or raw.lstrip().startswith("#"):
            continue
        lines.append(raw)

    if root_dir is None:
        return pathspec.PathSpec.from_lines("gitwildmatch", lines)

    rel = gitignore_file.parent.resolve().relative_to(Path(root_dir).resolve())
    prefix = f"{rel.as_posix()}/" if rel.parts else ""
    if not prefix:
        return pathspec.PathSpec.from_lines("gitwildmatch", lines)

    scoped = [
        "!" + _scope_pattern(raw[1:], prefix)
        if raw.startswith("!")
        else _scope_pattern(raw, prefix)
        for raw in lines
    ]
    return pathspec.PathSpec.from_lines("gitwildmatch", scoped)


def load_gitignores(root: Path, ignored_dirs: Iterable[str] = ()) -> pathspec.PathSpec:
    """Combine every .gitignore below *root* into a single spec."""
    ignored = set(ignored_dirs)
    combined = pathspec.PathSpec.from_lines("gitwildmatch", [])
    for gi_path in sorted(root.rglob(".gitignore")):
        if any(part in ignored for part in gi_path.relative_to(root).parts[:-1]):
            continue
        try:
            combined = combined + parse_gitignore(gi_path, root_dir=root)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to parse .gitignore", path=str(gi_path), exc=str(exc))
    return combined


def matches_gitignore(path: str | Path, spec: pathspec.PathSpec) -> bool:
    """
    Return True if *path* (relative to the scan root) is ignored by *spec*.
    """
    return spec.match_file(Path(path).as_posix())
