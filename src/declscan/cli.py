import asyncio
import json
from pathlib import Path
from typing import Dict, Iterable, Optional

import click

from declscan.errors import ParseFailure, SettingsError
from declscan.extract import extract_async
from declscan.logger import setup_logging
from declscan.models import dump_declarations
from declscan.scanner import scan_directory
from declscan.settings import ExtractSettings, ProbeType, load_settings


def parse_aliases(values: Iterable[str]) -> Dict[str, str]:
    """Turn repeated `PATTERN=TARGET` options into an alias table."""
    out: Dict[str, str] = {}
    for raw in values:
        pattern, sep, target = raw.partition("=")
        pattern, target = pattern.strip(), target.strip()
        if not sep or not pattern or not target:
            raise SettingsError(f"Invalid alias {raw!r}, expected PATTERN=TARGET")
        out[pattern] = target
    return out


def _build_settings(
    config: Optional[Path],
    aliases: Iterable[str],
    workspace: Optional[Path],
    probe: Optional[str],
) -> ExtractSettings:
    kwargs = {}
    if config is not None:
        suffix = config.suffix.lower()
        if suffix == ".toml":
            kwargs["toml_file"] = str(config)
        elif suffix == ".json":
            kwargs["json_file"] = str(config)
        else:
            kwargs["env_file"] = str(config)
    settings = load_settings(**kwargs)

    alias_table = parse_aliases(aliases)
    if alias_table:
        settings.path_aliases = {**settings.path_aliases, **alias_table}
    if workspace is not None:
        settings.resolver.workspace_dir = str(workspace.resolve())
    if probe is not None:
        settings.resolver.probe = ProbeType(probe)
    return settings


_config_option = click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (.toml, .json or a .env file).",
)
_alias_option = click.option(
    "--alias",
    "aliases",
    multiple=True,
    metavar="PATTERN=TARGET",
    help='Path alias, e.g. "@/*=./src/*". May be repeated.',
)
_probe_option = click.option(
    "--probe",
    type=click.Choice([p.value for p in ProbeType]),
    default=None,
    help="How internal module paths are confirmed on disk.",
)
_debug_option = click.option(
    "--debug/--no-debug",
    default=False,
    help="Enable debug logging.",
)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def main() -> None:
    """Extract TypeScript declarations and their dependencies."""


@main.command("extract")
@click.argument(
    "source",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
)
@click.option(
    "--workspace",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root; SOURCE is reported relative to it.",
)
@_alias_option
@_probe_option
@_config_option
@_debug_option
def extract_command(
    source: Path,
    workspace: Optional[Path],
    aliases: tuple[str, ...],
    probe: Optional[str],
    config: Optional[Path],
    debug: bool,
) -> None:
    """
    Print the declarations of SOURCE as JSON.
    """
    setup_logging(debug, click.get_text_stream("stderr"))
    try:
        settings = _build_settings(config, aliases, workspace, probe)
    except SettingsError as ex:
        raise click.UsageError(str(ex))

    file_path = source.as_posix()
    if workspace is not None:
        file_path = source.resolve().relative_to(workspace.resolve()).as_posix()

    text = source.read_text(encoding="utf-8")
    try:
        records = asyncio.run(extract_async(text, file_path, settings=settings))
    except ParseFailure as ex:
        raise click.ClickException(str(ex))

    click.echo(json.dumps(dump_declarations(records), indent=2))


@main.command("scan")
@click.argument(
    "root",
    type=click.Path(exists=True, file_okay=False, readable=True, path_type=Path),
)
@_alias_option
@_probe_option
@_config_option
@click.option(
    "--workers",
    type=int,
    default=None,
    help="Number of worker threads (default: CPU count - 1).",
)
@_debug_option
def scan_command(
    root: Path,
    aliases: tuple[str, ...],
    probe: Optional[str],
    config: Optional[Path],
    workers: Optional[int],
    debug: bool,
) -> None:
    """
    Extract every source file below ROOT and print the results as JSON.
    """
    setup_logging(debug, click.get_text_stream("stderr"))
    try:
        settings = _build_settings(config, aliases, root, probe)
    except SettingsError as ex:
        raise click.UsageError(str(ex))
    if workers is not None:
        settings.scanner_num_workers = workers

    result = asyncio.run(scan_directory(root, settings))
    payload = {
        "files": {
            f.path: {
                "fileHash": f.file_hash,
                "declarations": dump_declarations(f.declarations),
            }
            for f in result.files
        },
        "errors": result.errors,
    }
    click.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
