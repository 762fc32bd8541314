"""Built-in google/protobuf/*.proto files, served from the protobuf runtime."""

from google.protobuf import (
    any_pb2,
    api_pb2,
    descriptor_pb2,
    duration_pb2,
    empty_pb2,
    field_mask_pb2,
    source_context_pb2,
    struct_pb2,
    timestamp_pb2,
    type_pb2,
    wrappers_pb2,
)
from google.protobuf.descriptor_pb2 import FileDescriptorProto

from .descriptors import file_from_descriptor
from .types import ProtoFile

WELL_KNOWN_FILES = {
    module.DESCRIPTOR.name: module
    for module in (
        any_pb2,
        api_pb2,
        descriptor_pb2,
        duration_pb2,
        empty_pb2,
        field_mask_pb2,
        source_context_pb2,
        struct_pb2,
        timestamp_pb2,
        type_pb2,
        wrappers_pb2,
    )
}


def is_well_known(name: str) -> bool:
    return name in WELL_KNOWN_FILES


def well_known_descriptor(name: str) -> FileDescriptorProto:
    return FileDescriptorProto.FromString(WELL_KNOWN_FILES[name].DESCRIPTOR.serialized_pb)


def well_known_file(name: str) -> ProtoFile:
    """Return the parsed form of a built-in file such as `google/protobuf/any.proto`."""
    return file_from_descriptor(well_known_descriptor(name))
