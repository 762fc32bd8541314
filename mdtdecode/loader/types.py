"""AST types produced by the .proto parser."""

from dataclasses import dataclass, field
from typing import Any

from dataclasses_json import DataClassJsonMixin


@dataclass
class ProtoOption(DataClassJsonMixin):
    """Represents an `option name = value` statement or a bracketed field option."""

    name: str
    value: Any


@dataclass
class ProtoImport(DataClassJsonMixin):
    """Represents an import statement."""

    path: str
    modifier: str | None = None


@dataclass
class ProtoRange(DataClassJsonMixin):
    """Represents an inclusive number range from `reserved` or `extensions`.

    An end of None stands for `max`.
    """

    start: int
    end: int | None


@dataclass
class ProtoField(DataClassJsonMixin):
    """Represents a message field.

    For map fields:
    - map_key_type is the scalar key type
    - type_name is the value type
    - label is always "repeated"
    """

    name: str
    number: int
    type_name: str
    label: str | None = None
    oneof: str | None = None
    map_key_type: str | None = None
    options: list[ProtoOption] = field(default_factory=list)

    def option(self, name: str, default: Any = None) -> Any:
        for opt in self.options:
            if opt.name == name:
                return opt.value
        return default


@dataclass
class ProtoEnumValue(DataClassJsonMixin):
    """Represents a single enum value."""

    name: str
    number: int
    options: list[ProtoOption] = field(default_factory=list)


@dataclass
class ProtoEnum(DataClassJsonMixin):
    """Represents an enum type definition."""

    name: str
    values: list[ProtoEnumValue] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)
    reserved_ranges: list[ProtoRange] = field(default_factory=list)
    reserved_names: list[str] = field(default_factory=list)


@dataclass
class ProtoMessage(DataClassJsonMixin):
    """Represents a message definition.

    Fields appear in declaration order; fields declared inside a oneof carry
    its name in `oneof`, and `oneofs` lists the oneof names in order.
    """

    name: str
    fields: list[ProtoField] = field(default_factory=list)
    oneofs: list[str] = field(default_factory=list)
    messages: list["ProtoMessage"] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)
    reserved_ranges: list[ProtoRange] = field(default_factory=list)
    reserved_names: list[str] = field(default_factory=list)
    extension_ranges: list[ProtoRange] = field(default_factory=list)


@dataclass
class ProtoMethod(DataClassJsonMixin):
    """Represents an rpc declaration."""

    name: str
    input_type: str
    output_type: str
    client_streaming: bool = False
    server_streaming: bool = False
    options: list[ProtoOption] = field(default_factory=list)


@dataclass
class ProtoService(DataClassJsonMixin):
    """Represents a service definition."""

    name: str
    methods: list[ProtoMethod] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)


@dataclass
class ProtoFile(DataClassJsonMixin):
    """Represents a complete .proto file."""

    syntax: str = "proto2"
    package: str = ""
    imports: list[ProtoImport] = field(default_factory=list)
    messages: list[ProtoMessage] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)
    services: list[ProtoService] = field(default_factory=list)
    options: list[ProtoOption] = field(default_factory=list)


SCALAR_TYPES = frozenset(
    [
        "double",
        "float",
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
        "bytes",
    ]
)


def is_scalar(type_name: str) -> bool:
    """Check if a type name is a protobuf scalar type."""
    return type_name in SCALAR_TYPES
