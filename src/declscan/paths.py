"""
Module specifier resolution.

Specifiers are turned into project-relative paths with plain string
manipulation. Existence checks go through a `FileProbe`, the only part of
extraction that may suspend; a miss never fails resolution, the best-guess
path is returned instead.
"""

import asyncio
import os
import re
from abc import ABC, abstractmethod
from typing import Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel

from declscan.logger import logger
from declscan.settings import ProbeType, ResolverSettings

AliasTable = Mapping[str, str]

_HAS_EXTENSION = re.compile(r"\.[^/.]+$")


class ResolvedSpecifier(BaseModel):
    specifier: str
    source: str  # resolved path for internal specifiers, raw specifier otherwise
    is_external: bool


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------


class FileProbe(ABC):
    """
    Narrow asynchronous interface used to confirm that a candidate exists.
    """

    @abstractmethod
    async def exists(self, path: str) -> bool: ...


class NullProbe(FileProbe):
    """Probe that never finds anything; resolution keeps best-guess paths."""

    async def exists(self, path: str) -> bool:
        return False


class PathProbe(FileProbe):
    """Checks project-relative paths below *workspace_dir* on the local disk."""

    def __init__(self, workspace_dir: Optional[str] = None) -> None:
        self.workspace_dir = workspace_dir or os.getcwd()

    def _absolute(self, path: str) -> str:
        return os.path.join(self.workspace_dir, path.lstrip("/"))

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(os.path.isfile, self._absolute(path))


class CommandProbe(FileProbe):
    """
    Runs `test -f <path>` in *workspace_dir*; the exit status decides.
    """

    def __init__(
        self, workspace_dir: Optional[str] = None, command: Sequence[str] = ("test", "-f")
    ) -> None:
        self.workspace_dir = workspace_dir or os.getcwd()
        self.command = tuple(command)

    async def exists(self, path: str) -> bool:
        absolute = f"{self.workspace_dir}/{path}".replace("//", "/")
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                absolute,
                cwd=self.workspace_dir,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            return (await proc.wait()) == 0
        except OSError as ex:
            logger.debug("File probe command failed", path=absolute, error=str(ex))
            return False


def make_probe(settings: ResolverSettings) -> FileProbe:
    if settings.probe == ProbeType.PATH:
        return PathProbe(settings.workspace_dir)
    if settings.probe == ProbeType.COMMAND:
        return CommandProbe(settings.workspace_dir)
    return NullProbe()


# ---------------------------------------------------------------------------
# Pure string resolution
# ---------------------------------------------------------------------------


def _dirname(path: str) -> str:
    return path[: path.rfind("/")] if "/" in path else ""


def resolve_relative_path(current_file_path: str, import_path: str) -> str:
    """
    Resolve a relative *import_path* against the directory of *current_file_path*.
    Popping past the root yields ".." rather than failing.
    """
    current_dir = _dirname(current_file_path)

    if import_path == ".":
        return current_dir or "."

    if import_path == "..":
        if not current_dir:
            return ".."
        return _dirname(current_dir) or "."

    if import_path.startswith("./"):
        rest = import_path[2:]
        return f"{current_dir}/{rest}" if current_dir else rest

    if import_path.startswith("../"):
        segments = import_path.split("/")
        target = current_dir
        i = 0
        while i < len(segments) and segments[i] == "..":
            if target in ("", ".."):
                # popping past the root
                target = ".."
            else:
                target = _dirname(target)
            i += 1
        remaining = "/".join(segments[i:])
        if not remaining:
            return target or "."
        return f"{target}/{remaining}" if target else remaining

    return f"{current_dir}/{import_path}" if current_dir else import_path


def _alias_matches(alias: str, import_path: str) -> bool:
    if alias.endswith("/*"):
        return import_path.startswith(f"{alias[:-2]}/")
    return import_path == alias


def is_external_package(import_path: str, aliases: Optional[AliasTable] = None) -> bool:
    if import_path.startswith((".", "/")):
        return False
    for alias in (aliases or {}):
        if _alias_matches(alias, import_path):
            return False
    return True


def _normalize_target(target: str) -> str:
    while target.startswith("./"):
        target = target[2:]
    return target


def resolve_path_alias(import_path: str, aliases: Optional[AliasTable] = None) -> Optional[str]:
    """
    Rewrite the matched alias prefix of *import_path* to its target, keeping
    the remainder. Returns None when no alias applies.
    """
    for alias, target in (aliases or {}).items():
        if alias.endswith("/*"):
            prefix = alias[:-2]
            if not import_path.startswith(f"{prefix}/"):
                continue
            remainder = import_path[len(prefix) + 1 :]
            target_prefix = target[:-2] if target.endswith("/*") else target.rstrip("/")
            target_prefix = _normalize_target(target_prefix)
            if target_prefix in ("", "."):
                return remainder
            return f"{target_prefix}/{remainder}"
        if import_path == alias:
            return _normalize_target(target)
    return None


def resolve_internal_path(
    import_path: str, current_file_path: str, aliases: Optional[AliasTable] = None
) -> str:
    """Best-guess project-relative path, no filesystem access."""
    aliased = resolve_path_alias(import_path, aliases)
    if aliased is not None:
        return aliased
    if import_path.startswith("."):
        return resolve_relative_path(current_file_path, import_path)
    return import_path


async def resolve_file_path(
    base_path: str,
    probe: FileProbe,
    extensions: Iterable[str] = (".ts", ".tsx", ".js", ".jsx", ".json"),
    index_files: Iterable[str] = (
        "/index.ts",
        "/index.tsx",
        "/index.js",
        "/index.jsx",
        "/index.json",
    ),
) -> Optional[str]:
    """
    Return the first existing file for *base_path*: the literal path when it
    carries an extension, then each extension, then each index file.
    """
    if _HAS_EXTENSION.search(base_path) and await _safe_exists(probe, base_path):
        return base_path

    candidates = [f"{base_path}{ext}" for ext in extensions]
    candidates.extend(f"{base_path}{index}" for index in index_files)
    for cand in candidates:
        # avoid probing the root itself
        if cand == "/":
            continue
        if await _safe_exists(probe, cand):
            return cand
    return None


async def _safe_exists(probe: FileProbe, path: str) -> bool:
    try:
        return await probe.exists(path)
    except OSError as ex:
        logger.debug("File probe failed", path=path, error=str(ex))
        return False


async def resolve_internal_path_async(
    import_path: str,
    current_file_path: str,
    aliases: Optional[AliasTable] = None,
    probe: Optional[FileProbe] = None,
    settings: Optional[ResolverSettings] = None,
) -> str:
    candidate = resolve_internal_path(import_path, current_file_path, aliases)
    if probe is None:
        return candidate
    settings = settings or ResolverSettings()
    found = await resolve_file_path(
        candidate, probe, settings.extensions, settings.index_files
    )
    if found is None:
        logger.debug(
            "Unresolved module path, keeping best guess",
            specifier=import_path,
            candidate=candidate,
        )
        return candidate
    return found


def generate_declaration_uri(file_path: str, name: str) -> str:
    normalized = file_path.replace("\\", "/")
    if normalized.startswith("/"):
        normalized = normalized[1:]
    return f"{normalized}#{name}"


def package_name(import_path: str) -> str:
    """Package part of a bare specifier ("@scope/pkg/sub" -> "@scope/pkg")."""
    parts = import_path.split("/")
    if import_path.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0] or import_path


# ---------------------------------------------------------------------------
# Resolver facade
# ---------------------------------------------------------------------------


class SpecifierResolver:
    """
    Resolves every specifier of one file. Swap this class out to change how
    paths are computed without touching the module processor.
    """

    def __init__(
        self,
        aliases: Optional[AliasTable] = None,
        probe: Optional[FileProbe] = None,
        settings: Optional[ResolverSettings] = None,
    ) -> None:
        self.aliases = dict(aliases or {})
        self.probe = probe
        self.settings = settings or ResolverSettings()

    def resolve(self, specifier: str, current_file_path: str) -> ResolvedSpecifier:
        external = is_external_package(specifier, self.aliases)
        source = (
            specifier
            if external
            else resolve_internal_path(specifier, current_file_path, self.aliases)
        )
        return ResolvedSpecifier(specifier=specifier, source=source, is_external=external)

    async def resolve_async(
        self, specifier: str, current_file_path: str
    ) -> ResolvedSpecifier:
        external = is_external_package(specifier, self.aliases)
        if external:
            return ResolvedSpecifier(specifier=specifier, source=specifier, is_external=True)
        source = await resolve_internal_path_async(
            specifier, current_file_path, self.aliases, self.probe, self.settings
        )
        return ResolvedSpecifier(specifier=specifier, source=source, is_external=False)

    def resolve_all(
        self, specifiers: Iterable[str], current_file_path: str
    ) -> dict[str, ResolvedSpecifier]:
        return {s: self.resolve(s, current_file_path) for s in dict.fromkeys(specifiers)}

    async def resolve_all_async(
        self, specifiers: Iterable[str], current_file_path: str
    ) -> dict[str, ResolvedSpecifier]:
        out: dict[str, ResolvedSpecifier] = {}
        # one probe at a time, in source order
        for spec in dict.fromkeys(specifiers):
            out[spec] = await self.resolve_async(spec, current_file_path)
        return out
