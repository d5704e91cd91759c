import asyncio
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pathspec
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from declscan.errors import ParseFailure
from declscan.extract import extract, extract_async
from declscan.helpers import compute_file_hash, load_gitignores, matches_gitignore
from declscan.logger import logger
from declscan.models import Declaration
from declscan.settings import ExtractSettings, ProbeType


class FileDeclarations(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    path: str
    file_hash: str
    declarations: List[Declaration] = Field(default_factory=list)


class ScanResult(BaseModel):
    """Result object returned by `scan_directory`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    root: str
    files: List[FileDeclarations] = Field(default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)
    elapsed_seconds: float = 0.0


class ProcessFileStatus(Enum):
    EXTRACTED = "extracted"
    ERROR = "error"


@dataclass
class ProcessFileParams:
    path: Path
    root: Path
    settings: ExtractSettings


@dataclass
class ProcessFileResult:
    status: ProcessFileStatus
    duration: float
    rel_path: str
    file: Optional[FileDeclarations] = None
    exception: Optional[Exception] = None


def _process_file(params: ProcessFileParams) -> ProcessFileResult:
    """Runs on a worker thread; every call is independent of the others."""
    start = time.perf_counter()
    p = params
    rel_path = p.path.relative_to(p.root).as_posix()

    try:
        text = p.path.read_text(encoding="utf-8")
        file_hash = compute_file_hash(p.path)
        if p.settings.resolver.probe == ProbeType.NONE:
            records = extract(text, rel_path, p.settings.path_aliases)
        else:
            # each worker drives its own event loop for probing
            records = asyncio.run(extract_async(text, rel_path, settings=p.settings))
        return ProcessFileResult(
            status=ProcessFileStatus.EXTRACTED,
            duration=time.perf_counter() - start,
            rel_path=rel_path,
            file=FileDeclarations(path=rel_path, file_hash=file_hash, declarations=records),
        )
    except (ParseFailure, OSError, UnicodeDecodeError) as exc:
        return ProcessFileResult(
            status=ProcessFileStatus.ERROR,
            duration=time.perf_counter() - start,
            rel_path=rel_path,
            exception=exc,
        )


def _num_workers(settings: ExtractSettings) -> int:
    num_workers = settings.scanner_num_workers
    if num_workers is None:
        cpus = os.cpu_count()
        num_workers = max(1, cpus - 1) if cpus else 4
    return num_workers


def collect_source_files(
    root: Path, settings: ExtractSettings, gitignore: Optional[pathspec.PathSpec] = None
) -> List[Path]:
    """Source files below *root*, minus ignored directories and .gitignore matches."""
    if gitignore is None:
        gitignore = load_gitignores(root, settings.ignored_dirs)
    suffixes = tuple(s.lower() for s in settings.source_extensions)

    out: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in settings.ignored_dirs)
        for fname in sorted(filenames):
            if not fname.lower().endswith(suffixes):
                continue
            path = Path(dirpath) / fname
            if matches_gitignore(path.relative_to(root), gitignore):
                continue
            out.append(path)
    return out


async def scan_directory(
    root_path: str | Path,
    settings: Optional[ExtractSettings] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> ScanResult:
    """
    Walk *root_path*, extract declarations from every source file on a thread
    pool and collect per-file results. Parse failures are recorded in
    `errors` and never abort the scan.
    """
    start_time = time.perf_counter()
    settings = settings or ExtractSettings()
    root = Path(root_path).resolve()
    result = ScanResult(root=str(root))

    if not root.is_dir():
        logger.warning("scan_directory skipped - root is not a directory", root=str(root))
        return result

    files = collect_source_files(root, settings)
    num_workers = _num_workers(settings)
    logger.debug("number of workers", count=num_workers, files=len(files))

    loop = asyncio.get_running_loop()
    extracted: List[FileDeclarations] = []
    with ThreadPoolExecutor(max_workers=num_workers) as executor:
        tasks = [
            loop.run_in_executor(
                executor, _process_file, ProcessFileParams(path=p, root=root, settings=settings)
            )
            for p in files
        ]

        total = len(tasks)
        processed = 0
        for future in asyncio.as_completed(tasks):
            res: ProcessFileResult = await future
            processed += 1
            if processed % 100 == 0:
                logger.debug("processing...", num=processed, total=total)
            if progress_callback is not None:
                progress_callback(processed, total)

            if res.status == ProcessFileStatus.ERROR:
                logger.warning(
                    "Failed to extract declarations",
                    path=res.rel_path,
                    error=str(res.exception),
                )
                result.errors[res.rel_path] = str(res.exception)
            elif res.file is not None:
                extracted.append(res.file)

    result.files = sorted(extracted, key=lambda f: f.path)
    result.errors = dict(sorted(result.errors.items()))
    result.elapsed_seconds = time.perf_counter() - start_time
    logger.debug(
        "Scan finished",
        root=str(root),
        files=len(result.files),
        errors=len(result.errors),
        elapsed=round(result.elapsed_seconds, 3),
    )
    return result
