from typing import List, Mapping, Optional

from declscan.logger import logger
from declscan.models import DeclarationRecord
from declscan.parsers import parse_source
from declscan.paths import FileProbe, SpecifierResolver, make_probe
from declscan.processor import ModuleProcessor, collect_specifiers
from declscan.settings import ExtractSettings


def extract(
    source_text: str,
    file_path: str,
    path_aliases: Optional[Mapping[str, str]] = None,
) -> List[DeclarationRecord]:
    """
    Extract every declaration of one file.

    Module specifiers are resolved with string manipulation only, nothing is
    probed on disk. Raises `ParseFailure` when *source_text* does not parse.
    """
    tree = parse_source(source_text, file_path)
    resolver = SpecifierResolver(path_aliases)
    resolved = resolver.resolve_all(collect_specifiers(tree.root_node), file_path)
    records = ModuleProcessor(file_path, source_text, resolved, resolver).process(
        tree.root_node
    )
    logger.debug("Extracted declarations", path=file_path, count=len(records))
    return records


async def extract_async(
    source_text: str,
    file_path: str,
    path_aliases: Optional[Mapping[str, str]] = None,
    probe: Optional[FileProbe] = None,
    settings: Optional[ExtractSettings] = None,
) -> List[DeclarationRecord]:
    """
    Same as `extract`, but confirms internal module paths through *probe*
    (or the probe configured in *settings*) before the tree is walked.
    """
    settings = settings or ExtractSettings()
    if path_aliases is None:
        path_aliases = settings.path_aliases
    if probe is None:
        probe = make_probe(settings.resolver)

    tree = parse_source(source_text, file_path)
    resolver = SpecifierResolver(path_aliases, probe, settings.resolver)
    resolved = await resolver.resolve_all_async(
        collect_specifiers(tree.root_node), file_path
    )
    records = ModuleProcessor(file_path, source_text, resolved, resolver).process(
        tree.root_node
    )
    logger.debug("Extracted declarations", path=file_path, count=len(records))
    return records
