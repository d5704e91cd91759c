from pathlib import Path

import pytest

from declscan.paths import (
    CommandProbe,
    FileProbe,
    NullProbe,
    PathProbe,
    SpecifierResolver,
    generate_declaration_uri,
    is_external_package,
    package_name,
    resolve_file_path,
    resolve_internal_path,
    resolve_internal_path_async,
    resolve_path_alias,
    resolve_relative_path,
)
from declscan.settings import ProbeType, ResolverSettings

ALIASES = {"@/*": "./src/*", "~config": "./config/index"}


class FakeProbe(FileProbe):
    def __init__(self, existing):
        self.existing = set(existing)
        self.calls: list[str] = []

    async def exists(self, path: str) -> bool:
        self.calls.append(path)
        return path in self.existing


class BrokenProbe(FileProbe):
    async def exists(self, path: str) -> bool:
        raise OSError("probe unavailable")


# --------------------------------------------------------------------------- #
# Classification
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize(
    "specifier, expected",
    [
        ("react", True),
        ("@scope/pkg", True),
        ("lodash/fp", True),
        ("./b", False),
        ("../b", False),
        ("/abs/path", False),
        ("@/components/button", False),
        ("~config", False),
        ("~config/extra", True),
    ],
)
def test_is_external_package(specifier, expected):
    assert is_external_package(specifier, ALIASES) is expected


def test_package_name_keeps_scope():
    assert package_name("@scope/pkg/sub/path") == "@scope/pkg"
    assert package_name("lodash/fp") == "lodash"
    assert package_name("react") == "react"


# --------------------------------------------------------------------------- #
# String resolution
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize(
    "current, specifier, expected",
    [
        ("a.ts", "./b", "b"),
        ("src/a.ts", "./b", "src/b"),
        ("src/x/a.ts", "../b", "src/b"),
        ("src/x/y/a.ts", "../../b", "src/b"),
        ("src/a.ts", ".", "src"),
        ("src/x/a.ts", "..", "src"),
        ("a.ts", "../b", "../b"),
        ("src/a.ts", "../config", "config"),
        ("src/x/a.ts", "../../lib/util", "lib/util"),
        ("src/a.ts", "../../b", "../b"),
    ],
)
def test_resolve_relative_path(current, specifier, expected):
    assert resolve_relative_path(current, specifier) == expected


def test_glob_alias_matches_literal_relative_path():
    aliased = resolve_internal_path("@/components/button", "index.ts", ALIASES)
    literal = resolve_internal_path("./src/components/button", "index.ts", ALIASES)
    assert aliased == literal == "src/components/button"


def test_exact_alias():
    assert resolve_path_alias("~config", ALIASES) == "config/index"
    assert resolve_path_alias("react", ALIASES) is None


def test_relative_imports_are_never_external():
    resolver = SpecifierResolver()
    for spec in ("./a", "../lib/b", "./nested/c"):
        res = resolver.resolve(spec, "src/feature/file.ts")
        assert res.is_external is False
        assert res.source.startswith("src/")


def test_generate_declaration_uri():
    assert generate_declaration_uri("/src/a.ts", "f") == "src/a.ts#f"
    assert generate_declaration_uri("src\\a.ts", "N.f") == "src/a.ts#N.f"


# --------------------------------------------------------------------------- #
# Probing
# --------------------------------------------------------------------------- #
@pytest.mark.asyncio
async def test_resolve_file_path_tries_extensions_then_index():
    probe = FakeProbe({"src/b/index.ts"})
    assert await resolve_file_path("src/b", probe) == "src/b/index.ts"
    # every extension was tried before the index forms
    assert probe.calls[:5] == [
        "src/b.ts",
        "src/b.tsx",
        "src/b.js",
        "src/b.jsx",
        "src/b.json",
    ]


@pytest.mark.asyncio
async def test_resolve_file_path_prefers_literal_path_with_extension():
    probe = FakeProbe({"data/config.json"})
    assert await resolve_file_path("data/config.json", probe) == "data/config.json"
    assert probe.calls == ["data/config.json"]


@pytest.mark.asyncio
async def test_unresolved_path_keeps_best_guess():
    found = await resolve_internal_path_async("./missing", "src/a.ts", None, NullProbe())
    assert found == "src/missing"


@pytest.mark.asyncio
async def test_probe_errors_count_as_missing():
    found = await resolve_internal_path_async("./b", "src/a.ts", None, BrokenProbe())
    assert found == "src/b"


@pytest.mark.asyncio
async def test_resolver_resolve_all_async():
    probe = FakeProbe({"src/components/button.tsx"})
    resolver = SpecifierResolver(ALIASES, probe)
    table = await resolver.resolve_all_async(
        ["react", "@/components/button", "react"], "src/app.tsx"
    )
    assert list(table) == ["react", "@/components/button"]
    assert table["react"].is_external is True
    assert table["react"].source == "react"
    assert table["@/components/button"].source == "src/components/button.tsx"


@pytest.mark.asyncio
async def test_path_probe(tmp_path: Path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "b.ts").write_text("export const b = 1;\n")
    probe = PathProbe(str(tmp_path))
    assert await probe.exists("src/b.ts") is True
    assert await probe.exists("src/c.ts") is False
    settings = ResolverSettings(workspace_dir=str(tmp_path), probe=ProbeType.PATH)
    assert await resolve_internal_path_async("./b", "src/a.ts", None, probe, settings) == "src/b.ts"


@pytest.mark.asyncio
async def test_command_probe(tmp_path: Path):
    (tmp_path / "a.ts").write_text("\n")
    probe = CommandProbe(str(tmp_path))
    assert await probe.exists("a.ts") is True
    assert await probe.exists("nope.ts") is False


@pytest.mark.asyncio
async def test_command_probe_missing_binary_is_false(tmp_path: Path):
    probe = CommandProbe(str(tmp_path), command=("definitely-not-a-real-binary-xyz",))
    assert await probe.exists("a.ts") is False
