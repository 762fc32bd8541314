"""Entry points turning schema files into package definitions."""

import asyncio
import logging
from typing import Any

from google.protobuf import json_format
from google.protobuf.descriptor_pb2 import FileDescriptorSet
from google.protobuf.message import DecodeError

from .definitions import PackageDefinition, create_package_definition
from .errors import SchemaError
from .options import CodecOptions
from .resolver import SchemaSource, graph_from_descriptor_set, resolve

logger = logging.getLogger(__name__)


async def load(filename: str | list[str], options: CodecOptions | None = None,
               include_dirs: tuple[str, ...] | list[str] = (),
               source: SchemaSource | None = None) -> PackageDefinition:
    """Load a .proto file and its imports into a package definition."""
    root = await resolve(filename, include_dirs, source)
    definition = create_package_definition(root, options)
    logger.info("loaded %s: %d definitions", filename, len(definition))
    return definition


def load_sync(filename: str | list[str], options: CodecOptions | None = None,
              include_dirs: tuple[str, ...] | list[str] = ()) -> PackageDefinition:
    return asyncio.run(load(filename, options, include_dirs))


def load_file_descriptor_set(data: bytes, options: CodecOptions | None = None) -> PackageDefinition:
    """Load a serialized FileDescriptorSet, as written by `protoc -o`."""
    try:
        descriptor_set = FileDescriptorSet.FromString(data)
    except DecodeError as err:
        raise SchemaError(f"invalid file descriptor set: {err}") from err
    return create_package_definition(graph_from_descriptor_set(descriptor_set), options)


def load_file_descriptor_set_from_object(value: dict[str, Any],
                                         options: CodecOptions | None = None) -> PackageDefinition:
    """Load a FileDescriptorSet given in its JSON object form."""
    try:
        descriptor_set = json_format.ParseDict(value, FileDescriptorSet())
    except json_format.ParseError as err:
        raise SchemaError(f"invalid file descriptor set: {err}") from err
    return create_package_definition(graph_from_descriptor_set(descriptor_set), options)
