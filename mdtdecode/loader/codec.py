"""Conversion between protobuf message instances and plain Python values."""

import base64
import functools
import math
from collections.abc import Mapping
from typing import Any

from google.protobuf import message_factory
from google.protobuf.descriptor import Descriptor, FieldDescriptor, OneofDescriptor
from google.protobuf.descriptor_pb2 import DescriptorProto
from google.protobuf.message import Message

from .errors import SerializationError
from .options import BytesRepresentation, CodecOptions, EnumRepresentation, LongRepresentation
from .util import json_name

ANY_TYPE = "google.protobuf.Any"

LONG_CPP_TYPES = frozenset([FieldDescriptor.CPPTYPE_INT64, FieldDescriptor.CPPTYPE_UINT64])
INT_CPP_TYPES = LONG_CPP_TYPES | {FieldDescriptor.CPPTYPE_INT32, FieldDescriptor.CPPTYPE_UINT32}
FLOAT_CPP_TYPES = frozenset([FieldDescriptor.CPPTYPE_DOUBLE, FieldDescriptor.CPPTYPE_FLOAT])


def _is_repeated(f: FieldDescriptor) -> bool:
    return f.is_repeated


def _is_map(f: FieldDescriptor) -> bool:
    return (
        f.type == FieldDescriptor.TYPE_MESSAGE
        and f.message_type.GetOptions().map_entry
        and _is_repeated(f)
    )


@functools.cache
def _synthetic_oneofs(descriptor: Descriptor) -> frozenset[str]:
    """Names of the oneofs generated for proto3 `optional` fields."""
    proto = DescriptorProto()
    descriptor.CopyToProto(proto)
    return frozenset(
        proto.oneof_decl[f.oneof_index].name for f in proto.field if f.proto3_optional
    )


def _is_synthetic(oneof: OneofDescriptor) -> bool:
    return oneof.name in _synthetic_oneofs(oneof.containing_type)


def _real_oneof(f: FieldDescriptor) -> OneofDescriptor | None:
    oneof = f.containing_oneof
    if oneof is None or _is_synthetic(oneof):
        return None
    return oneof


def _key(name: str, camel: str, options: CodecOptions) -> str:
    return name if options.keep_case else camel


# -- message -> native --


def _scalar_to_native(f: FieldDescriptor, value: Any, options: CodecOptions) -> Any:
    if f.type == FieldDescriptor.TYPE_ENUM:
        if options.enums == EnumRepresentation.STRING:
            enum_value = f.enum_type.values_by_number.get(value)
            return enum_value.name if enum_value is not None else value
        return value
    if f.type == FieldDescriptor.TYPE_BYTES:
        if options.bytes == BytesRepresentation.BASE64:
            return base64.b64encode(value).decode("ascii")
        if options.bytes == BytesRepresentation.ARRAY:
            return list(value)
        return bytes(value)
    if f.cpp_type in LONG_CPP_TYPES and options.longs == LongRepresentation.STRING:
        return str(value)
    if f.cpp_type in FLOAT_CPP_TYPES and options.json and not math.isfinite(value):
        if math.isnan(value):
            return "NaN"
        return "Infinity" if value > 0 else "-Infinity"
    return value


def _value_to_native(f: FieldDescriptor, value: Any, options: CodecOptions) -> Any:
    if f.cpp_type == FieldDescriptor.CPPTYPE_MESSAGE:
        return to_native(value, options)
    return _scalar_to_native(f, value, options)


def _any_to_native(message: Message, options: CodecOptions) -> dict[str, Any]:
    type_url = message.type_url
    pool = message.DESCRIPTOR.file.pool
    try:
        descriptor = pool.FindMessageTypeByName(type_url.rsplit("/", 1)[-1])
    except KeyError:
        # Unknown payload type, fall back to type_url and value
        return {}
    inner = _message_class(descriptor)()
    inner.ParseFromString(message.value)
    return {"@type": type_url, **to_native(inner, options)}


def _message_class(descriptor: Descriptor) -> type[Message]:
    return message_factory.GetMessageClass(descriptor)


def _default_for(f: FieldDescriptor, options: CodecOptions) -> Any:
    if _is_map(f):
        return {}
    if _is_repeated(f):
        return []
    if f.cpp_type == FieldDescriptor.CPPTYPE_MESSAGE:
        return None
    return _scalar_to_native(f, f.default_value, options)


def to_native(message: Message, options: CodecOptions | None = None) -> dict[str, Any]:
    """Convert a message instance to a dict according to `options`.

    Only fields present on the wire appear in the result unless one of the
    `defaults`, `arrays` or `objects` options asks for them.
    """
    options = options or CodecOptions()
    descriptor = message.DESCRIPTOR

    if options.json and descriptor.full_name == ANY_TYPE and message.type_url:
        expanded = _any_to_native(message, options)
        if expanded:
            return expanded

    result: dict[str, Any] = {}
    present = set()
    for f, value in message.ListFields():
        present.add(f.name)
        key = _key(f.name, f.camelcase_name, options)
        if _is_map(f):
            value_field = f.message_type.fields_by_name["value"]
            result[key] = {k: _value_to_native(value_field, v, options) for k, v in value.items()}
        elif _is_repeated(f):
            result[key] = [_value_to_native(f, v, options) for v in value]
        else:
            result[key] = _value_to_native(f, value, options)

        oneof = _real_oneof(f)
        if options.oneofs and oneof is not None:
            result[_key(oneof.name, json_name(oneof.name), options)] = key

    for f in descriptor.fields:
        if f.name in present or _real_oneof(f) is not None:
            continue
        key = _key(f.name, f.camelcase_name, options)
        if options.defaults:
            result[key] = _default_for(f, options)
        elif _is_map(f) and options.objects:
            result[key] = {}
        elif _is_repeated(f) and not _is_map(f) and options.arrays:
            result[key] = []
    return result


# -- native -> message --


def _enum_number(f: FieldDescriptor, value: Any) -> int:
    if isinstance(value, str):
        enum_value = f.enum_type.values_by_name.get(value)
        if enum_value is None:
            raise ValueError(f"unknown value {value!r} for enum {f.enum_type.full_name}")
        return enum_value.number
    return int(value)


def _scalar_from_native(f: FieldDescriptor, value: Any) -> Any:
    if f.type == FieldDescriptor.TYPE_ENUM:
        return _enum_number(f, value)
    if f.type == FieldDescriptor.TYPE_BYTES:
        if isinstance(value, str):
            return base64.b64decode(value)
        return bytes(value)
    if f.type == FieldDescriptor.TYPE_STRING:
        if not isinstance(value, str):
            raise TypeError(f"expected string, got {type(value).__name__}")
        return value
    if f.cpp_type == FieldDescriptor.CPPTYPE_BOOL:
        if isinstance(value, str):
            return value.lower() == "true"
        return bool(value)
    if f.cpp_type in INT_CPP_TYPES:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"expected integer, got {value}")
        return int(value)
    if f.cpp_type in FLOAT_CPP_TYPES:
        return float(value)
    return value


def _lookup_fields(descriptor: Descriptor) -> dict[str, FieldDescriptor]:
    fields: dict[str, FieldDescriptor] = {}
    for f in descriptor.fields:
        fields[f.name] = f
        fields.setdefault(f.camelcase_name, f)
        fields.setdefault(f.json_name, f)
    return fields


def _fill_any(message: Message, value: Mapping[str, Any], path: str) -> None:
    type_url = value["@type"]
    pool = message.DESCRIPTOR.file.pool
    try:
        descriptor = pool.FindMessageTypeByName(type_url.rsplit("/", 1)[-1])
    except KeyError as err:
        raise SerializationError(f"{path}: unknown type {type_url}") from err
    inner = _message_class(descriptor)()
    _fill(inner, {k: v for k, v in value.items() if k != "@type"}, path)
    message.type_url = type_url
    message.value = inner.SerializeToString()


def _fill(message: Message, value: Any, path: str) -> None:
    descriptor = message.DESCRIPTOR
    if isinstance(value, Message):
        message.CopyFrom(value)
        return
    if isinstance(value, (list, tuple)):
        raise SerializationError(
            f"{path}: expected object with {descriptor.full_name} structure, got array instead"
        )
    if not isinstance(value, Mapping):
        raise SerializationError(
            f"{path}: expected object with {descriptor.full_name} structure, "
            f"got {type(value).__name__} instead"
        )
    if descriptor.full_name == ANY_TYPE and "@type" in value:
        _fill_any(message, value, path)
        return

    fields = _lookup_fields(descriptor)
    for key, item in value.items():
        f = fields.get(key)
        if f is None or item is None:
            continue
        field_path = f"{path}.{f.name}"
        try:
            _set_field(message, f, item, field_path)
        except (TypeError, ValueError) as err:
            raise SerializationError(f"{field_path}: {err}") from err


def _set_field(message: Message, f: FieldDescriptor, item: Any, path: str) -> None:
    if _is_map(f):
        if not isinstance(item, Mapping):
            raise TypeError(f"expected object, got {type(item).__name__}")
        key_field = f.message_type.fields_by_name["key"]
        value_field = f.message_type.fields_by_name["value"]
        target = getattr(message, f.name)
        for k, v in item.items():
            map_key = _scalar_from_native(key_field, k)
            if value_field.cpp_type == FieldDescriptor.CPPTYPE_MESSAGE:
                _fill(target[map_key], v, f"{path}[{k!r}]")
            else:
                target[map_key] = _scalar_from_native(value_field, v)
    elif _is_repeated(f):
        if not isinstance(item, (list, tuple)):
            raise TypeError(f"expected array, got {type(item).__name__}")
        target = getattr(message, f.name)
        if f.cpp_type == FieldDescriptor.CPPTYPE_MESSAGE:
            for index, element in enumerate(item):
                _fill(target.add(), element, f"{path}[{index}]")
        else:
            target.extend(_scalar_from_native(f, element) for element in item)
    elif f.cpp_type == FieldDescriptor.CPPTYPE_MESSAGE:
        child = getattr(message, f.name)
        child.SetInParent()
        _fill(child, item, path)
    else:
        setattr(message, f.name, _scalar_from_native(f, item))


def from_native(message_class: type[Message], value: Any) -> Message:
    """Build a message instance from a dict.

    Keys may use the declared field name or its camel case form. Unknown keys
    and None values are ignored.
    """
    message = message_class()
    _fill(message, value, message_class.DESCRIPTOR.name)
    return message
