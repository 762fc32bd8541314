"""Immutable definition bundles for messages, enums and services.

A package definition maps every handled qualified name in a type graph to
one of these bundles. Bundles are built once and never mutated, so they can
be shared freely between callers.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Union

from google.protobuf import descriptor_pool, message_factory
from google.protobuf.descriptor_pb2 import DescriptorProto, EnumDescriptorProto
from google.protobuf.message import DecodeError, Message

from .codec import from_native, to_native
from .descriptors import build_pool, file_descriptors, handled_objects
from .errors import DeserializationError
from .graph import MessageNode, NodeKind, Root, ServiceNode
from .options import DESCRIPTOR_OPTIONS, CodecOptions
from .util import lower_camel_case


@dataclass(frozen=True)
class MessageDefinition:
    """Codec and descriptor for one message type."""

    name: str
    message_class: type[Message]
    options: CodecOptions
    descriptor: bytes
    file_descriptor_protos: tuple[bytes, ...]
    format: str = "Protocol Buffer 3 DescriptorProto"

    def serialize(self, value: Any) -> bytes:
        return from_native(self.message_class, value).SerializeToString()

    def deserialize(self, data: bytes) -> dict[str, Any]:
        try:
            message = self.message_class.FromString(bytes(data))
        except DecodeError as err:
            raise DeserializationError(f"{self.name}: {err}") from err
        return to_native(message, self.options)

    @property
    def type(self) -> dict[str, Any]:
        return to_native(DescriptorProto.FromString(self.descriptor), DESCRIPTOR_OPTIONS)


@dataclass(frozen=True)
class EnumDefinition:
    """Descriptor for one enum type."""

    name: str
    descriptor: bytes
    file_descriptor_protos: tuple[bytes, ...]
    format: str = "Protocol Buffer 3 EnumDescriptorProto"

    @property
    def type(self) -> dict[str, Any]:
        return to_native(EnumDescriptorProto.FromString(self.descriptor), DESCRIPTOR_OPTIONS)


@dataclass(frozen=True)
class MethodDefinition:
    """Call descriptor for one rpc method."""

    path: str
    request_stream: bool
    response_stream: bool
    original_name: str
    request_type: MessageDefinition
    response_type: MessageDefinition

    @property
    def request_serialize(self):
        return self.request_type.serialize

    @property
    def request_deserialize(self):
        return self.request_type.deserialize

    @property
    def response_serialize(self):
        return self.response_type.serialize

    @property
    def response_deserialize(self):
        return self.response_type.deserialize


@dataclass(frozen=True, eq=False)
class ServiceDefinition(Mapping[str, MethodDefinition]):
    """Read-only mapping of method name to call descriptor."""

    name: str
    methods: Mapping[str, MethodDefinition]

    def __getitem__(self, key: str) -> MethodDefinition:
        return self.methods[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.methods)

    def __len__(self) -> int:
        return len(self.methods)


Definition = Union[MessageDefinition, EnumDefinition, ServiceDefinition]
PackageDefinition = Mapping[str, Definition]


class _Builder:
    def __init__(self, root: Root, options: CodecOptions) -> None:
        protos = file_descriptors(root)
        self.options = options
        self.pool: descriptor_pool.DescriptorPool = build_pool(protos)
        self.file_protos = tuple(p.SerializeToString() for p in protos)
        self.messages: dict[str, MessageDefinition] = {}

    def message(self, full_name: str) -> MessageDefinition:
        definition = self.messages.get(full_name)
        if definition is None:
            descriptor = self.pool.FindMessageTypeByName(full_name)
            proto = DescriptorProto()
            descriptor.CopyToProto(proto)
            definition = MessageDefinition(
                name=full_name,
                message_class=message_factory.GetMessageClass(descriptor),
                options=self.options,
                descriptor=proto.SerializeToString(),
                file_descriptor_protos=self.file_protos,
            )
            self.messages[full_name] = definition
        return definition

    def enum(self, full_name: str) -> EnumDefinition:
        descriptor = self.pool.FindEnumTypeByName(full_name)
        proto = EnumDescriptorProto()
        descriptor.CopyToProto(proto)
        return EnumDefinition(
            name=full_name,
            descriptor=proto.SerializeToString(),
            file_descriptor_protos=self.file_protos,
        )

    def service(self, full_name: str, node: ServiceNode) -> ServiceDefinition:
        methods = {}
        for method in node.methods:
            request: MessageNode = method.resolved_input
            response: MessageNode = method.resolved_output
            methods[method.name] = MethodDefinition(
                path=f"/{full_name}/{method.name}",
                request_stream=method.client_streaming,
                response_stream=method.server_streaming,
                original_name=lower_camel_case(method.name),
                request_type=self.message(request.full_name),
                response_type=self.message(response.full_name),
            )
        return ServiceDefinition(name=full_name, methods=MappingProxyType(methods))


def create_package_definition(root: Root, options: CodecOptions | None = None) -> PackageDefinition:
    """Build a definition bundle for every handled object in a linked graph."""
    builder = _Builder(root, options or CodecOptions())
    definitions: dict[str, Definition] = {}
    for name, node in handled_objects(root):
        match node.kind:
            case NodeKind.MESSAGE:
                definitions[name] = builder.message(name)
            case NodeKind.ENUM:
                definitions[name] = builder.enum(name)
            case NodeKind.SERVICE:
                definitions[name] = builder.service(name, node)
    return MappingProxyType(definitions)
