import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from declscan.cli import main, parse_aliases
from declscan.errors import SettingsError


def _write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_parse_aliases():
    assert parse_aliases(["@/*=./src/*", " ~cfg = ./config "]) == {
        "@/*": "./src/*",
        "~cfg": "./config",
    }
    with pytest.raises(SettingsError):
        parse_aliases(["missing-separator"])
    with pytest.raises(SettingsError):
        parse_aliases(["=./src"])


def test_extract_command(tmp_path: Path):
    _write(tmp_path, "src/components/button.ts", "export const Button = 1;\n")
    source = _write(
        tmp_path,
        "src/app.ts",
        'import { Button } from "@/components/button";\nexport const app = Button;\n',
    )

    runner = CliRunner()
    result = runner.invoke(
        main,
        [
            "extract",
            str(source),
            "--workspace",
            str(tmp_path),
            "--alias",
            "@/*=./src/*",
            "--probe",
            "path",
        ],
    )

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert [d["name"] for d in data] == ["app"]
    assert data[0]["uri"] == "src/app.ts#app"
    assert data[0]["dependencies"] == [
        {
            "type": "internal",
            "filePath": "src/components/button.ts",
            "dependsOn": ["Button"],
        }
    ]


def test_extract_command_bad_alias(tmp_path: Path):
    source = _write(tmp_path, "a.ts", "export const a = 1;\n")
    result = CliRunner().invoke(main, ["extract", str(source), "--alias", "oops"])
    assert result.exit_code == 2


def test_extract_command_parse_failure(tmp_path: Path):
    source = _write(tmp_path, "a.ts", "export const = ;\n")
    result = CliRunner().invoke(main, ["extract", str(source)])
    assert result.exit_code == 1
    assert "Failed to parse TypeScript code" in result.output


def test_scan_command(tmp_path: Path):
    _write(tmp_path, "a.ts", "export function f() {}\n")

    result = CliRunner().invoke(main, ["scan", str(tmp_path), "--workers", "1"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert list(data["files"]) == ["a.ts"]
    assert data["files"]["a.ts"]["declarations"][0]["name"] == "f"
    assert len(data["files"]["a.ts"]["fileHash"]) == 64
    assert data["errors"] == {}
