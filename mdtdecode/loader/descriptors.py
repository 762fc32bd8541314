"""Conversion between the type graph and protobuf descriptors.

The synthesizer direction flattens a linked graph into the handled
(message, enum, service) objects and into one `FileDescriptorProto` per
loaded file. The reverse direction turns compiled descriptors back into
parser AST types so they can be merged into a graph like any .proto source.
"""

from google.protobuf import descriptor_pool
from google.protobuf.descriptor_pb2 import (
    DescriptorProto,
    EnumDescriptorProto,
    FieldDescriptorProto,
    FileDescriptorProto,
    MethodDescriptorProto,
    ServiceDescriptorProto,
)

from .errors import SchemaError
from .graph import (
    HANDLED_KINDS,
    EnumNode,
    FieldNode,
    MessageNode,
    Node,
    NodeKind,
    Root,
    SchemaFile,
    ServiceNode,
    join_name,
)
from .parser import MAX_FIELD_NUMBER
from .types import (
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoImport,
    ProtoMessage,
    ProtoMethod,
    ProtoOption,
    ProtoRange,
    ProtoService,
)
from .util import json_name, map_entry_name

MAX_ENUM_VALUE = 2_147_483_647

SCALAR_FIELD_TYPES = {
    "double": FieldDescriptorProto.TYPE_DOUBLE,
    "float": FieldDescriptorProto.TYPE_FLOAT,
    "int64": FieldDescriptorProto.TYPE_INT64,
    "uint64": FieldDescriptorProto.TYPE_UINT64,
    "int32": FieldDescriptorProto.TYPE_INT32,
    "fixed64": FieldDescriptorProto.TYPE_FIXED64,
    "fixed32": FieldDescriptorProto.TYPE_FIXED32,
    "bool": FieldDescriptorProto.TYPE_BOOL,
    "string": FieldDescriptorProto.TYPE_STRING,
    "bytes": FieldDescriptorProto.TYPE_BYTES,
    "uint32": FieldDescriptorProto.TYPE_UINT32,
    "sfixed32": FieldDescriptorProto.TYPE_SFIXED32,
    "sfixed64": FieldDescriptorProto.TYPE_SFIXED64,
    "sint32": FieldDescriptorProto.TYPE_SINT32,
    "sint64": FieldDescriptorProto.TYPE_SINT64,
}

SCALAR_TYPE_NAMES = {number: name for name, number in SCALAR_FIELD_TYPES.items()}

LABELS = {
    "optional": FieldDescriptorProto.LABEL_OPTIONAL,
    "required": FieldDescriptorProto.LABEL_REQUIRED,
    "repeated": FieldDescriptorProto.LABEL_REPEATED,
}


def handled_objects(node: Node, parent_name: str = "") -> list[tuple[str, Node]]:
    """List every message, enum and service reachable through namespaces.

    A handled node ends its branch; types nested inside messages are not
    listed separately.
    """
    name = join_name(parent_name, node.name)
    if node.kind in HANDLED_KINDS:
        return [(name, node)]
    if node.kind is NodeKind.NAMESPACE:
        return [
            item
            for child in node.children.values()
            for item in handled_objects(child, name)
        ]
    return []


# -- graph -> descriptors --


def _default_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _set_type(proto: FieldDescriptorProto, type_name: str, resolved: Node | None) -> None:
    if resolved is None:
        proto.type = SCALAR_FIELD_TYPES[type_name]
    elif resolved.kind is NodeKind.MESSAGE:
        proto.type = FieldDescriptorProto.TYPE_MESSAGE
        proto.type_name = f".{resolved.full_name}"
    else:
        proto.type = FieldDescriptorProto.TYPE_ENUM
        proto.type_name = f".{resolved.full_name}"


def _map_entry_proto(f: FieldNode) -> DescriptorProto:
    entry = DescriptorProto(name=map_entry_name(f.name))
    entry.options.map_entry = True
    entry.field.add(
        name="key",
        number=1,
        label=FieldDescriptorProto.LABEL_OPTIONAL,
        type=SCALAR_FIELD_TYPES[f.map_key_type],
        json_name="key",
    )
    value = entry.field.add(
        name="value", number=2, label=FieldDescriptorProto.LABEL_OPTIONAL, json_name="value"
    )
    _set_type(value, f.type_name, f.resolved)
    return entry


def _field_options(proto: FieldDescriptorProto, f: FieldNode) -> None:
    for opt in f.options:
        if opt.name == "packed":
            proto.options.packed = bool(opt.value)
        elif opt.name == "deprecated":
            proto.options.deprecated = bool(opt.value)
        elif opt.name == "json_name":
            proto.json_name = str(opt.value)
        elif opt.name == "default":
            proto.default_value = _default_value(opt.value)


def _message_proto(node: MessageNode, syntax: str) -> DescriptorProto:
    proto = DescriptorProto(name=node.name)
    oneof_index: dict[str, int] = {}
    for name in node.oneofs:
        oneof_index[name] = len(proto.oneof_decl)
        proto.oneof_decl.add(name=name)

    entries: list[DescriptorProto] = []
    for f in node.fields:
        field_proto = proto.field.add(name=f.name, number=f.number, json_name=json_name(f.name))
        if f.is_map:
            entry = _map_entry_proto(f)
            entries.append(entry)
            field_proto.label = FieldDescriptorProto.LABEL_REPEATED
            field_proto.type = FieldDescriptorProto.TYPE_MESSAGE
            field_proto.type_name = f".{node.full_name}.{entry.name}"
        else:
            field_proto.label = LABELS.get(f.label or "optional", FieldDescriptorProto.LABEL_OPTIONAL)
            _set_type(field_proto, f.type_name, f.resolved)

        if f.oneof is not None:
            field_proto.oneof_index = oneof_index[f.oneof]
        elif syntax == "proto3" and f.label == "optional":
            # Synthetic oneofs follow every real oneof
            field_proto.proto3_optional = True
            field_proto.oneof_index = len(proto.oneof_decl)
            proto.oneof_decl.add(name=f"_{f.name}")

        _field_options(field_proto, f)

    for child in node.children.values():
        if child.kind is NodeKind.MESSAGE:
            proto.nested_type.append(_message_proto(child, syntax))
        elif child.kind is NodeKind.ENUM:
            proto.enum_type.append(_enum_proto(child))
    proto.nested_type.extend(entries)

    for r in node.ast.reserved_ranges:
        end = MAX_FIELD_NUMBER if r.end is None else r.end
        proto.reserved_range.add(start=r.start, end=end + 1)
    proto.reserved_name.extend(node.ast.reserved_names)
    for r in node.ast.extension_ranges:
        end = MAX_FIELD_NUMBER if r.end is None else r.end
        proto.extension_range.add(start=r.start, end=end + 1)

    for opt in node.ast.options:
        if opt.name == "deprecated":
            proto.options.deprecated = bool(opt.value)
    return proto


def _enum_proto(node: EnumNode) -> EnumDescriptorProto:
    proto = EnumDescriptorProto(name=node.name)
    for value in node.values:
        proto.value.add(name=value.name, number=value.number)
    for opt in node.ast.options:
        if opt.name == "allow_alias":
            proto.options.allow_alias = bool(opt.value)
        elif opt.name == "deprecated":
            proto.options.deprecated = bool(opt.value)
    # Enum reserved ranges are inclusive
    for r in node.ast.reserved_ranges:
        proto.reserved_range.add(start=r.start, end=MAX_ENUM_VALUE if r.end is None else r.end)
    proto.reserved_name.extend(node.ast.reserved_names)
    return proto


def _service_proto(node: ServiceNode) -> ServiceDescriptorProto:
    proto = ServiceDescriptorProto(name=node.name)
    for method in node.methods:
        proto.method.append(
            MethodDescriptorProto(
                name=method.name,
                input_type=f".{method.resolved_input.full_name}",
                output_type=f".{method.resolved_output.full_name}",
                client_streaming=method.client_streaming,
                server_streaming=method.server_streaming,
            )
        )
    return proto


def _file_proto(schema_file: SchemaFile) -> FileDescriptorProto:
    ast = schema_file.ast
    proto = FileDescriptorProto(name=schema_file.name, package=ast.package, syntax=ast.syntax)
    proto.dependency.extend(schema_file.dependencies)
    proto.public_dependency.extend(schema_file.public_dependencies)

    for node in schema_file.nodes:
        if node.kind is NodeKind.MESSAGE:
            proto.message_type.append(_message_proto(node, ast.syntax))
        elif node.kind is NodeKind.ENUM:
            proto.enum_type.append(_enum_proto(node))
        elif node.kind is NodeKind.SERVICE:
            proto.service.append(_service_proto(node))
    return proto


def file_descriptors(root: Root) -> list[FileDescriptorProto]:
    """Build one FileDescriptorProto per loaded file, dependencies first."""
    return [_file_proto(schema_file) for schema_file in root.files]


def build_pool(file_protos: list[FileDescriptorProto]) -> descriptor_pool.DescriptorPool:
    """Register file descriptors in a fresh descriptor pool."""
    pool = descriptor_pool.DescriptorPool()
    for proto in file_protos:
        try:
            pool.AddSerializedFile(proto.SerializeToString())
        except (KeyError, TypeError, ValueError) as err:
            raise SchemaError(f"{proto.name}: {err}") from err
    return pool


# -- descriptors -> AST --


def _field_from_descriptor(
    proto: FieldDescriptorProto,
    message: DescriptorProto,
    map_entries: dict[str, DescriptorProto],
    syntax: str,
) -> ProtoField:
    if proto.type == FieldDescriptorProto.TYPE_GROUP:
        raise SchemaError(f"{message.name}.{proto.name}: groups are not supported")

    type_name = proto.type_name or SCALAR_TYPE_NAMES[proto.type]
    label = {v: k for k, v in LABELS.items()}[proto.label]
    oneof = None
    if proto.HasField("oneof_index") and not proto.proto3_optional:
        oneof = message.oneof_decl[proto.oneof_index].name
        label = None
    elif syntax == "proto3" and label == "optional":
        label = "optional" if proto.proto3_optional else None

    options = []
    if proto.options.HasField("packed"):
        options.append(ProtoOption(name="packed", value=proto.options.packed))
    if proto.options.deprecated:
        options.append(ProtoOption(name="deprecated", value=True))
    if proto.HasField("default_value"):
        options.append(ProtoOption(name="default", value=proto.default_value))

    entry = map_entries.get(type_name.rsplit(".", 1)[-1])
    if proto.type == FieldDescriptorProto.TYPE_MESSAGE and entry is not None:
        key, value = entry.field[0], entry.field[1]
        return ProtoField(
            name=proto.name,
            number=proto.number,
            type_name=value.type_name or SCALAR_TYPE_NAMES[value.type],
            label="repeated",
            map_key_type=SCALAR_TYPE_NAMES[key.type],
            options=options,
        )

    return ProtoField(
        name=proto.name,
        number=proto.number,
        type_name=type_name,
        label=label,
        oneof=oneof,
        options=options,
    )


def _message_from_descriptor(proto: DescriptorProto, syntax: str) -> ProtoMessage:
    map_entries = {n.name: n for n in proto.nested_type if n.options.map_entry}
    fields = [_field_from_descriptor(f, proto, map_entries, syntax) for f in proto.field]
    oneofs = []
    for f in fields:
        if f.oneof is not None and f.oneof not in oneofs:
            oneofs.append(f.oneof)

    return ProtoMessage(
        name=proto.name,
        fields=fields,
        oneofs=oneofs,
        messages=[
            _message_from_descriptor(n, syntax)
            for n in proto.nested_type
            if not n.options.map_entry
        ],
        enums=[_enum_from_descriptor(e) for e in proto.enum_type],
        reserved_ranges=[ProtoRange(start=r.start, end=r.end - 1) for r in proto.reserved_range],
        reserved_names=list(proto.reserved_name),
        extension_ranges=[ProtoRange(start=r.start, end=r.end - 1) for r in proto.extension_range],
    )


def _enum_from_descriptor(proto: EnumDescriptorProto) -> ProtoEnum:
    options = []
    if proto.options.allow_alias:
        options.append(ProtoOption(name="allow_alias", value=True))
    return ProtoEnum(
        name=proto.name,
        values=[ProtoEnumValue(name=v.name, number=v.number) for v in proto.value],
        options=options,
        reserved_ranges=[ProtoRange(start=r.start, end=r.end) for r in proto.reserved_range],
        reserved_names=list(proto.reserved_name),
    )


def _service_from_descriptor(proto: ServiceDescriptorProto) -> ProtoService:
    return ProtoService(
        name=proto.name,
        methods=[
            ProtoMethod(
                name=m.name,
                input_type=m.input_type,
                output_type=m.output_type,
                client_streaming=m.client_streaming,
                server_streaming=m.server_streaming,
            )
            for m in proto.method
        ],
    )


def file_from_descriptor(proto: FileDescriptorProto) -> ProtoFile:
    """Convert a compiled FileDescriptorProto back into a ProtoFile."""
    syntax = proto.syntax or "proto2"
    imports = []
    for index, dependency in enumerate(proto.dependency):
        modifier = None
        if index in proto.public_dependency:
            modifier = "public"
        elif index in proto.weak_dependency:
            modifier = "weak"
        imports.append(ProtoImport(path=dependency, modifier=modifier))

    return ProtoFile(
        syntax=syntax,
        package=proto.package,
        imports=imports,
        messages=[_message_from_descriptor(m, syntax) for m in proto.message_type],
        enums=[_enum_from_descriptor(e) for e in proto.enum_type],
        services=[_service_from_descriptor(s) for s in proto.service],
    )
