from enum import Enum
from typing import Annotated, Iterable, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class DeclarationKind(str, Enum):
    FUNCTION = "function"
    CLASS = "class"
    INTERFACE = "interface"
    TYPE = "type"
    ENUM = "enum"
    NAMESPACE = "namespace"
    CONST = "const"
    LET = "let"
    VAR = "var"


class _Model(BaseModel):
    # Attributes are snake_case, serialized output (by_alias=True) is camelCase.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


class LineColumn(_Model):
    line: int = 1
    column: int = 1


class Position(_Model):
    start: LineColumn = Field(default_factory=LineColumn)
    end: LineColumn = Field(default_factory=LineColumn)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


class InternalDependency(_Model):
    type: Literal["internal"] = "internal"
    file_path: str
    depends_on: List[str] = Field(default_factory=list)


class ExternalDependency(_Model):
    type: Literal["external"] = "external"
    package_name: str
    import_path: str
    depends_on: List[str] = Field(default_factory=list)


Dependency = Annotated[
    Union[InternalDependency, ExternalDependency], Field(discriminator="type")
]


# ---------------------------------------------------------------------------
# Signature parts
# ---------------------------------------------------------------------------


class ParameterInfo(_Model):
    name: str
    type: str = "any"
    is_optional: bool = False
    is_rest: bool = False


class _MemberRecord(_Model):
    """Identity and dependency data shared by class members."""

    name: str
    uri: str = ""
    position: Position = Field(default_factory=Position)
    type_signature: str = ""
    dependencies: List[Dependency] = Field(default_factory=list)


class MethodSignature(_MemberRecord):
    is_static: bool = False
    is_private: bool = False
    is_protected: bool = False
    is_async: bool = False
    is_generator: bool = False
    is_abstract: bool = False
    accessor: Optional[Literal["get", "set"]] = None
    parameters: List[ParameterInfo] = Field(default_factory=list)
    return_type: Optional[str] = None  # absent for constructors
    type_parameters: Optional[List[str]] = None


class PropertyInfo(_MemberRecord):
    type: str = "any"
    is_static: bool = False
    is_private: bool = False
    is_protected: bool = False
    is_readonly: bool = False
    is_optional: bool = False
    initializer: Optional[str] = None  # raw source text


class ClassMemberInfo(_Model):
    properties: List[PropertyInfo] = Field(default_factory=list)
    methods: List[MethodSignature] = Field(default_factory=list)
    constructor: Optional[MethodSignature] = None


class EnumMemberInfo(_Model):
    name: str
    initializer: Optional[str] = None  # raw source text, never evaluated


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


class DeclarationRecord(_Model):
    """
    Shared envelope of every extracted declaration. Kind specific data lives
    on the subclasses below.
    """

    name: str
    kind: DeclarationKind
    is_exported: bool = False
    is_default: bool = False
    is_re_export: bool = False
    re_export_source: Optional[str] = None
    position: Position = Field(default_factory=Position)
    uri: str
    type_signature: str = ""
    type_parameters: Optional[List[str]] = None
    dependencies: List[Dependency] = Field(default_factory=list)


class FunctionDeclaration(DeclarationRecord):
    kind: DeclarationKind = DeclarationKind.FUNCTION
    parameters: List[ParameterInfo] = Field(default_factory=list)
    return_type: str = "any"
    is_async: bool = False
    is_generator: bool = False


class ClassDeclaration(DeclarationRecord):
    kind: DeclarationKind = DeclarationKind.CLASS
    extends: Optional[str] = None
    implements: List[str] = Field(default_factory=list)
    members: ClassMemberInfo = Field(default_factory=ClassMemberInfo)
    is_abstract: bool = False


class InterfaceDeclaration(DeclarationRecord):
    # Supertypes of an interface are recorded in `implements`.
    kind: DeclarationKind = DeclarationKind.INTERFACE
    extends: Optional[str] = None
    implements: List[str] = Field(default_factory=list)


class TypeAliasDeclaration(DeclarationRecord):
    kind: DeclarationKind = DeclarationKind.TYPE


class EnumDeclaration(DeclarationRecord):
    kind: DeclarationKind = DeclarationKind.ENUM
    enum_members: List[EnumMemberInfo] = Field(default_factory=list)
    is_const: bool = False


class VariableDeclaration(DeclarationRecord):
    kind: DeclarationKind = DeclarationKind.CONST


class ReExportDeclaration(DeclarationRecord):
    kind: DeclarationKind = DeclarationKind.CONST
    is_exported: bool = True
    is_re_export: bool = True


class NamespaceDeclaration(DeclarationRecord):
    kind: DeclarationKind = DeclarationKind.NAMESPACE
    members: List["Declaration"] = Field(default_factory=list)


Declaration = Union[
    FunctionDeclaration,
    ClassDeclaration,
    InterfaceDeclaration,
    TypeAliasDeclaration,
    EnumDeclaration,
    NamespaceDeclaration,
    ReExportDeclaration,
    VariableDeclaration,
]

NamespaceDeclaration.model_rebuild()


def flatten_declarations(records: Iterable[DeclarationRecord]) -> Iterator[DeclarationRecord]:
    """
    Yield *records* depth-first, each namespace followed by its members.
    """
    for rec in records:
        yield rec
        if isinstance(rec, NamespaceDeclaration):
            yield from flatten_declarations(rec.members)


def dump_declarations(records: Iterable[DeclarationRecord]) -> list[dict]:
    """Serialize records to their camelCase wire shape."""
    return [
        rec.model_dump(mode="json", by_alias=True, exclude_none=True)
        for rec in records
    ]
