import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Union

from declscan.models import Dependency, ExternalDependency, InternalDependency
from declscan.paths import package_name

_IDENTIFIER = re.compile(r"(?<![A-Za-z0-9_$])[A-Za-z_$][A-Za-z0-9_$]*")


@dataclass(frozen=True)
class ImportBinding:
    """Where a locally bound import name comes from."""

    specifier: str  # as written in the import statement
    source: str  # resolved path for internal imports, the specifier otherwise
    is_external: bool


IdentifierMap = Dict[str, ImportBinding]


def find_dependencies(
    code: str, imported_identifiers: Mapping[str, ImportBinding]
) -> List[Dependency]:
    """
    Match every identifier token in *code* against the imported names and
    group the hits by originating module, in first-appearance order.
    """
    if not imported_identifiers:
        return []

    grouped: Dict[str, Union[InternalDependency, ExternalDependency]] = {}
    seen: set[str] = set()
    for match in _IDENTIFIER.finditer(code):
        ident = match.group(0)
        if ident in seen:
            continue
        seen.add(ident)

        binding = imported_identifiers.get(ident)
        if binding is None:
            continue

        key = f"{'ext' if binding.is_external else 'int'}:{binding.source}"
        dep = grouped.get(key)
        if dep is None:
            if binding.is_external:
                dep = ExternalDependency(
                    package_name=package_name(binding.specifier),
                    import_path=binding.specifier,
                )
            else:
                dep = InternalDependency(file_path=binding.source)
            grouped[key] = dep
        dep.depends_on.append(ident)

    return list(grouped.values())
