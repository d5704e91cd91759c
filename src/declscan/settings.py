from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)


class ProbeType(str, Enum):
    """How the resolver confirms that a candidate file exists."""

    NONE = "none"
    PATH = "path"
    COMMAND = "command"


class ResolverSettings(BaseModel):
    """Settings for module specifier resolution."""

    extensions: List[str] = Field(
        default_factory=lambda: [".ts", ".tsx", ".js", ".jsx", ".json"],
        description="Suffixes appended to an extensionless candidate path, tried in order.",
    )
    index_files: List[str] = Field(
        default_factory=lambda: [
            "/index.ts",
            "/index.tsx",
            "/index.js",
            "/index.jsx",
            "/index.json",
        ],
        description="Index-file suffixes appended to a candidate treated as a directory.",
    )
    workspace_dir: Optional[str] = Field(
        default=None,
        description=(
            "Directory that project-relative candidate paths are probed against. "
            "Defaults to the current working directory."
        ),
    )
    probe: ProbeType = Field(
        default=ProbeType.NONE,
        description=(
            'Existence probe used by the resolver: "none" (never probe), '
            '"path" (stat files below workspace_dir) or "command" (run `test -f`).'
        ),
    )


class ExtractSettings(BaseSettings):
    """Top-level settings for declaration extraction."""

    model_config = SettingsConfigDict(
        env_prefix="DECLSCAN_", env_nested_delimiter="__"
    )

    path_aliases: Dict[str, str] = Field(
        default_factory=dict,
        description=(
            'Alias table mapping specifier patterns to path prefixes, e.g. {"@/*": "./src/*"}.'
        ),
    )
    resolver: ResolverSettings = Field(
        default_factory=ResolverSettings,
        description="A `ResolverSettings` object with resolver-specific configuration.",
    )
    source_extensions: List[str] = Field(
        default_factory=lambda: [".ts", ".tsx", ".mts", ".cts"],
        description="File suffixes picked up when scanning a directory.",
    )
    ignored_dirs: set[str] = Field(
        default_factory=lambda: {
            ".git",
            ".hg",
            ".svn",
            "node_modules",
            "dist",
            "build",
            ".next",
            ".turbo",
            ".idea",
            ".vscode",
        },
        description="A set of directory names to ignore during directory scanning.",
    )
    scanner_num_workers: Optional[int] = Field(
        default=None,
        description=(
            "Number of worker threads for the scanner. If None, it defaults to "
            "`os.cpu_count() - 1` (min 1, fallback 4)."
        ),
    )


def load_settings(
    env_file: Optional[str] = None,
    toml_file: Optional[str] = None,
    json_file: Optional[str] = None,
    **kwargs,
) -> ExtractSettings:
    config_dict = SettingsConfigDict(
        env_prefix="DECLSCAN_",
        env_nested_delimiter="__",
        env_file=env_file,
        toml_file=toml_file,
        json_file=json_file,
    )

    class Settings(ExtractSettings):
        model_config = config_dict

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls,
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ):
            sources = [init_settings, env_settings, dotenv_settings]
            if toml_file:
                sources.append(TomlConfigSettingsSource(settings_cls))
            if json_file:
                sources.append(JsonConfigSettingsSource(settings_cls))
            return tuple(sources)

    return Settings(**kwargs)
