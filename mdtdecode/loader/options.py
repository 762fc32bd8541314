"""Codec options controlling how decoded messages are represented."""

from dataclasses import dataclass
from enum import StrEnum, auto

from dataclasses_json import DataClassJsonMixin


class LongRepresentation(StrEnum):
    """How 64-bit integers are represented."""

    NUMBER = auto()
    STRING = auto()


class EnumRepresentation(StrEnum):
    """How enum values are represented."""

    NUMBER = auto()
    STRING = auto()


class BytesRepresentation(StrEnum):
    """How bytes fields are represented."""

    RAW = auto()
    BASE64 = auto()
    ARRAY = auto()


@dataclass(frozen=True)
class CodecOptions(DataClassJsonMixin):
    """Options applied when converting decoded messages to native values.

    - keep_case: use field names as declared instead of lower camel case
    - longs/enums/bytes: representation of 64-bit integers, enums and bytes
    - defaults: populate missing fields with their default values
    - arrays: populate missing repeated fields with empty lists
    - objects: populate missing map fields with empty dicts
    - oneofs: set a virtual property named after each oneof to the present field
    - json: represent NaN and Infinity as strings and expand google.protobuf.Any
    """

    keep_case: bool = False
    longs: LongRepresentation = LongRepresentation.NUMBER
    enums: EnumRepresentation = EnumRepresentation.NUMBER
    bytes: BytesRepresentation = BytesRepresentation.RAW
    defaults: bool = False
    arrays: bool = False
    objects: bool = False
    oneofs: bool = False
    json: bool = False


# Used when describing schema entities themselves
DESCRIPTOR_OPTIONS = CodecOptions(
    longs=LongRepresentation.STRING,
    enums=EnumRepresentation.STRING,
    bytes=BytesRepresentation.BASE64,
    defaults=True,
    oneofs=True,
    json=True,
)
