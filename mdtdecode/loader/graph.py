"""Linked type graph built from parsed .proto files.

Every declaration becomes a node with a kind from the closed `NodeKind`
enumeration. Packages become namespace nodes shared by all files that
declare them. Nodes own their children; the parent link is weak and only
used for name resolution.
"""

import weakref
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import ClassVar

from .errors import DuplicateNameError, UnresolvedReferenceError, ValidationError
from .types import (
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    ProtoMethod,
    ProtoOption,
    ProtoService,
    is_scalar,
)

MAP_KEY_TYPES = frozenset(
    [
        "int32",
        "int64",
        "uint32",
        "uint64",
        "sint32",
        "sint64",
        "fixed32",
        "fixed64",
        "sfixed32",
        "sfixed64",
        "bool",
        "string",
    ]
)


class NodeKind(Enum):
    """Kinds of node in the type graph."""

    NAMESPACE = auto()
    MESSAGE = auto()
    ENUM = auto()
    SERVICE = auto()


HANDLED_KINDS = frozenset([NodeKind.MESSAGE, NodeKind.ENUM, NodeKind.SERVICE])


@dataclass(eq=False)
class SchemaFile:
    """A loaded .proto file and the top-level nodes it declared."""

    name: str
    path: str | None
    ast: ProtoFile
    dependencies: list[str] = field(default_factory=list)
    public_dependencies: list[int] = field(default_factory=list)
    nodes: list["Node"] = field(default_factory=list)


def join_name(base_name: str, name: str) -> str:
    if base_name == "":
        return name
    return f"{base_name}.{name}"


class Node:
    """Base class for type graph nodes."""

    kind: ClassVar[NodeKind]

    def __init__(self, name: str, parent: "Node | None" = None,
                 file: SchemaFile | None = None) -> None:
        self.name = name
        self.file = file
        self.children: dict[str, Node] = {}
        self._parent = weakref.ref(parent) if parent is not None else None
        if parent is not None:
            parent.add(self)

    @property
    def parent(self) -> "Node | None":
        return self._parent() if self._parent is not None else None

    @property
    def full_name(self) -> str:
        parent = self.parent
        if parent is None:
            return self.name
        return join_name(parent.full_name, self.name)

    def add(self, child: "Node") -> None:
        if child.name in self.children:
            raise DuplicateNameError(
                f"duplicate name {join_name(self.full_name, child.name)}"
            )
        self.children[child.name] = child

    def walk(self) -> Iterator["Node"]:
        yield self
        for child in self.children.values():
            yield from child.walk()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.full_name or '<root>'}>"


class Namespace(Node):
    kind = NodeKind.NAMESPACE


@dataclass(eq=False)
class FieldNode:
    """A message field, with its type reference resolved after linking."""

    name: str
    number: int
    type_name: str
    label: str | None = None
    oneof: str | None = None
    map_key_type: str | None = None
    options: list[ProtoOption] = field(default_factory=list)
    resolved: Node | None = None

    @classmethod
    def from_ast(cls, ast: ProtoField) -> "FieldNode":
        return cls(
            name=ast.name,
            number=ast.number,
            type_name=ast.type_name,
            label=ast.label,
            oneof=ast.oneof,
            map_key_type=ast.map_key_type,
            options=ast.options,
        )

    @property
    def is_map(self) -> bool:
        return self.map_key_type is not None

    @property
    def is_repeated(self) -> bool:
        return self.label == "repeated"

    @property
    def is_scalar(self) -> bool:
        return is_scalar(self.type_name)

    def option(self, name: str, default: object = None) -> object:
        for opt in self.options:
            if opt.name == name:
                return opt.value
        return default


class MessageNode(Node):
    kind = NodeKind.MESSAGE

    def __init__(self, ast: ProtoMessage, parent: Node, file: SchemaFile | None = None) -> None:
        super().__init__(ast.name, parent, file)
        self.ast = ast
        self.fields = [FieldNode.from_ast(f) for f in ast.fields]
        self.oneofs = list(ast.oneofs)
        for nested in ast.messages:
            MessageNode(nested, self, file)
        for enum in ast.enums:
            EnumNode(enum, self, file)


class EnumNode(Node):
    kind = NodeKind.ENUM

    def __init__(self, ast: ProtoEnum, parent: Node, file: SchemaFile | None = None) -> None:
        super().__init__(ast.name, parent, file)
        self.ast = ast

    @property
    def values(self) -> list[ProtoEnumValue]:
        return self.ast.values


@dataclass(eq=False)
class MethodNode:
    """An rpc declaration with resolved request and response types."""

    name: str
    input_type: str
    output_type: str
    client_streaming: bool = False
    server_streaming: bool = False
    resolved_input: "MessageNode | None" = None
    resolved_output: "MessageNode | None" = None

    @classmethod
    def from_ast(cls, ast: ProtoMethod) -> "MethodNode":
        return cls(
            name=ast.name,
            input_type=ast.input_type,
            output_type=ast.output_type,
            client_streaming=ast.client_streaming,
            server_streaming=ast.server_streaming,
        )


class ServiceNode(Node):
    kind = NodeKind.SERVICE

    def __init__(self, ast: ProtoService, parent: Node, file: SchemaFile | None = None) -> None:
        super().__init__(ast.name, parent, file)
        self.ast = ast
        self.methods = [MethodNode.from_ast(m) for m in ast.methods]


class Root(Namespace):
    """Root namespace of a type graph, holding every loaded file."""

    def __init__(self) -> None:
        super().__init__("")
        self.files: list[SchemaFile] = []

    def add_file(self, schema_file: SchemaFile) -> None:
        """Merge a file's declarations into the graph."""
        namespace = self._namespace(schema_file.ast.package)
        for message in schema_file.ast.messages:
            schema_file.nodes.append(MessageNode(message, namespace, schema_file))
        for enum in schema_file.ast.enums:
            schema_file.nodes.append(EnumNode(enum, namespace, schema_file))
        for service in schema_file.ast.services:
            schema_file.nodes.append(ServiceNode(service, namespace, schema_file))
        self.files.append(schema_file)

    def _namespace(self, package: str) -> Node:
        node: Node = self
        if not package:
            return node
        for part in package.split("."):
            child = node.children.get(part)
            if child is None:
                child = Namespace(part, node)
            elif child.kind is not NodeKind.NAMESPACE:
                raise DuplicateNameError(
                    f"package {package} conflicts with {child.kind.name.lower()} {child.full_name}"
                )
            node = child
        return node

    def find(self, qualified_name: str) -> Node | None:
        """Look up a node by its fully qualified name."""
        node: Node | None = self
        for part in qualified_name.split("."):
            node = node.children.get(part)
            if node is None:
                return None
        return node

    def lookup(self, reference: str, scope: Node) -> Node | None:
        """Resolve a type reference from within `scope`, innermost scope first."""
        if reference.startswith("."):
            return self.find(reference[1:])

        current: Node | None = scope
        while current is not None:
            candidate = self.find(join_name(current.full_name, reference))
            if candidate is not None and candidate.kind in (NodeKind.MESSAGE, NodeKind.ENUM):
                return candidate
            current = current.parent
        return None

    def resolve_all(self) -> None:
        """Bind every field and method type reference, failing on the first miss."""
        for node in self.walk():
            if node.kind is NodeKind.MESSAGE:
                self._resolve_fields(node)
            elif node.kind is NodeKind.SERVICE:
                self._resolve_methods(node)

    def _resolve_fields(self, message: MessageNode) -> None:
        for f in message.fields:
            if f.is_map and f.map_key_type not in MAP_KEY_TYPES:
                raise ValidationError(
                    f"{message.full_name}.{f.name}: invalid map key type {f.map_key_type}"
                )
            if f.is_scalar:
                continue
            resolved = self.lookup(f.type_name, message)
            if resolved is None:
                raise UnresolvedReferenceError(f.type_name, message.full_name)
            f.resolved = resolved

    def _resolve_methods(self, service: ServiceNode) -> None:
        for method in service.methods:
            request = self.lookup(method.input_type, service)
            if request is None or request.kind is not NodeKind.MESSAGE:
                raise UnresolvedReferenceError(method.input_type, service.full_name)
            response = self.lookup(method.output_type, service)
            if response is None or response.kind is not NodeKind.MESSAGE:
                raise UnresolvedReferenceError(method.output_type, service.full_name)
            method.resolved_input = request
            method.resolved_output = response
