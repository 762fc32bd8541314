"""Protobuf IDL parser using Lark."""

import os
from dataclasses import dataclass, field
from typing import Any, TypeVar

from lark import Lark, Token
from lark.exceptions import UnexpectedEOF, UnexpectedInput, VisitError
from lark.visitors import Transformer

from .errors import SchemaSyntaxError, ValidationError
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

_g_parser: Lark | None = None

MAX_FIELD_NUMBER = 536_870_911
RESERVED_FIELD_NUMBERS = range(19_000, 20_000)


@dataclass
class _Syntax:
    value: str


@dataclass
class _Package:
    value: str


@dataclass
class _Name:
    value: str


@dataclass
class _TypeRef:
    value: str


@dataclass
class _String:
    value: str


@dataclass
class _Constant:
    value: Any


@dataclass
class _OptionPart:
    value: str


@dataclass
class _OptionName:
    value: str


@dataclass
class _FieldOptions:
    value: list[ProtoOption]


@dataclass
class _AggregateKey:
    value: str


@dataclass
class _AggregateField:
    key: str
    value: Any


@dataclass
class _RangeEnd:
    value: int | None


@dataclass
class _ReservedName:
    value: str


@dataclass
class _Reserved:
    ranges: list[ProtoRange] = field(default_factory=list)
    names: list[str] = field(default_factory=list)


@dataclass
class _Extensions:
    ranges: list[ProtoRange]


@dataclass
class _Extend:
    target: str


@dataclass
class _Oneof:
    name: str
    fields: list[ProtoField]


@dataclass
class _MethodType:
    streaming: bool
    type_name: str


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[object]) -> Any:
    filtered = _filter(args, class_type)
    if len(filtered) == 0:
        return None
    if len(filtered) > 1:
        raise RuntimeError(f"Found more than one {class_type.__name__.lstrip('_').lower()}")
    return filtered[0].value


TMany = TypeVar("TMany")


def _find_many(args: list[Any], class_type: type[TMany]) -> list[TMany]:
    return _filter(args, class_type)


def _tokens(args: list[Any], token_type: str) -> list[Token]:
    return [v for v in args if isinstance(v, Token) and v.type == token_type]


def _unquote(token: str) -> str:
    text = token[1:-1]
    if "\\" in text:
        text = text.encode("latin-1", "backslashreplace").decode("unicode_escape")
    return text


def _parse_int(text: str) -> int:
    sign = -1 if text.startswith("-") else 1
    digits = text.lstrip("+-")
    if digits[:2].lower() == "0x":
        return sign * int(digits, 16)
    if len(digits) > 1 and digits.startswith("0"):
        return sign * int(digits, 8)
    return sign * int(digits)


def _parse_number(text: str) -> int | float:
    try:
        return _parse_int(text)
    except ValueError:
        return float(text)


class TreeTransformer(Transformer):
    """Transform the parse tree into proto AST types."""

    def start(self, args: list[Any]) -> ProtoFile:
        return ProtoFile(
            syntax=_find_one(args, _Syntax) or "proto2",
            package=_find_one(args, _Package) or "",
            imports=_find_many(args, ProtoImport),
            messages=_find_many(args, ProtoMessage),
            enums=_find_many(args, ProtoEnum),
            services=_find_many(args, ProtoService),
            options=_find_many(args, ProtoOption),
        )

    def syntax(self, args: list[Any]) -> _Syntax:
        value = args[0].value
        if value not in ("proto2", "proto3"):
            raise ValueError(f"Unsupported syntax {value!r}")
        return _Syntax(value=value)

    def edition(self, args: list[Any]) -> None:
        raise ValueError("Editions are not supported")

    def import_stmt(self, args: list[Any]) -> ProtoImport:
        modifier = _tokens(args, "IMPORT_MODIFIER")
        return ProtoImport(
            path=_find_one(args, _String),
            modifier=str(modifier[0]) if modifier else None,
        )

    def package(self, args: list[Any]) -> _Package:
        return _Package(value=_find_one(args, _Name))

    # -- options --

    def simple_option_part(self, args: list[Any]) -> _OptionPart:
        return _OptionPart(value=str(args[0]))

    def extension_option_part(self, args: list[Any]) -> _OptionPart:
        return _OptionPart(value=f"({_find_one(args, _Name)})")

    def option_name(self, args: list[Any]) -> _OptionName:
        return _OptionName(value=".".join(part.value for part in _find_many(args, _OptionPart)))

    def option_stmt(self, args: list[Any]) -> ProtoOption:
        return ProtoOption(name=_find_one(args, _OptionName), value=_find_one(args, _Constant))

    def field_option(self, args: list[Any]) -> ProtoOption:
        return ProtoOption(name=_find_one(args, _OptionName), value=_find_one(args, _Constant))

    def field_options(self, args: list[Any]) -> _FieldOptions:
        return _FieldOptions(value=_find_many(args, ProtoOption))

    def ident_constant(self, args: list[Any]) -> _Constant:
        name = args[0].value
        return _Constant(value={"true": True, "false": False}.get(name, name))

    def negative_ident_constant(self, args: list[Any]) -> _Constant:
        return _Constant(value=f"-{args[0].value}")

    def number_constant(self, args: list[Any]) -> _Constant:
        return _Constant(value=_parse_number(str(args[0])))

    def string_constant(self, args: list[Any]) -> _Constant:
        return _Constant(value=args[0].value)

    def aggregate(self, args: list[Any]) -> _Constant:
        return _Constant(value={item.key: item.value for item in _find_many(args, _AggregateField)})

    def aggregate_field(self, args: list[Any]) -> _AggregateField:
        return _AggregateField(key=args[0].value, value=args[1].value)

    def aggregate_key(self, args: list[Any]) -> _AggregateKey:
        name = _find_one(args, _Name)
        if name is not None:
            return _AggregateKey(value=f"[{name}]")
        return _AggregateKey(value=str(args[0]))

    def aggregate_list(self, args: list[Any]) -> _Constant:
        return _Constant(value=[item.value for item in _find_many(args, _Constant)])

    # -- messages --

    def field(self, args: list[Any]) -> ProtoField:
        label = _tokens(args, "LABEL")
        return ProtoField(
            name=str(_tokens(args, "IDENT")[0]),
            number=_parse_int(str(_tokens(args, "NUMBER")[0])),
            type_name=_find_one(args, _TypeRef),
            label=str(label[0]) if label else None,
            options=_find_one(args, _FieldOptions) or [],
        )

    def map_field(self, args: list[Any]) -> ProtoField:
        key_type, name = _tokens(args, "IDENT")
        return ProtoField(
            name=str(name),
            number=_parse_int(str(_tokens(args, "NUMBER")[0])),
            type_name=_find_one(args, _TypeRef),
            label="repeated",
            map_key_type=str(key_type),
            options=_find_one(args, _FieldOptions) or [],
        )

    def oneof_field(self, args: list[Any]) -> ProtoField:
        return ProtoField(
            name=str(_tokens(args, "IDENT")[0]),
            number=_parse_int(str(_tokens(args, "NUMBER")[0])),
            type_name=_find_one(args, _TypeRef),
            options=_find_one(args, _FieldOptions) or [],
        )

    def oneof(self, args: list[Any]) -> _Oneof:
        name = str(_tokens(args, "IDENT")[0])
        fields = _find_many(args, ProtoField)
        for f in fields:
            f.oneof = name
        return _Oneof(name=name, fields=fields)

    def message(self, args: list[Any]) -> ProtoMessage:
        message = ProtoMessage(name=str(_tokens(args, "IDENT")[0]))
        # Keep declaration order so oneof members stay interleaved with plain fields
        for item in args:
            if isinstance(item, ProtoField):
                message.fields.append(item)
            elif isinstance(item, _Oneof):
                message.oneofs.append(item.name)
                message.fields.extend(item.fields)
            elif isinstance(item, ProtoMessage):
                message.messages.append(item)
            elif isinstance(item, ProtoEnum):
                message.enums.append(item)
            elif isinstance(item, ProtoOption):
                message.options.append(item)
            elif isinstance(item, _Reserved):
                message.reserved_ranges.extend(item.ranges)
                message.reserved_names.extend(item.names)
            elif isinstance(item, _Extensions):
                message.extension_ranges.extend(item.ranges)
        return message

    def reserved(self, args: list[Any]) -> _Reserved:
        return _Reserved(
            ranges=_find_many(args, ProtoRange),
            names=[name.value for name in _find_many(args, _ReservedName)],
        )

    def reserved_name(self, args: list[Any]) -> _ReservedName:
        if isinstance(args[0], _String):
            return _ReservedName(value=args[0].value)
        return _ReservedName(value=str(args[0]))

    def extensions(self, args: list[Any]) -> _Extensions:
        return _Extensions(ranges=_find_many(args, ProtoRange))

    def range(self, args: list[Any]) -> ProtoRange:
        start = _parse_int(str(args[0]))
        if len(args) == 1:
            return ProtoRange(start=start, end=start)
        return ProtoRange(start=start, end=args[1].value)

    def range_end(self, args: list[Any]) -> _RangeEnd:
        if args[0].type == "MAX":
            return _RangeEnd(value=None)
        return _RangeEnd(value=_parse_int(str(args[0])))

    def extend(self, args: list[Any]) -> _Extend:
        return _Extend(target=_find_one(args, _TypeRef))

    # -- enums --

    def enum_value(self, args: list[Any]) -> ProtoEnumValue:
        return ProtoEnumValue(
            name=str(_tokens(args, "IDENT")[0]),
            number=_parse_int(str(_tokens(args, "NUMBER")[0])),
            options=_find_one(args, _FieldOptions) or [],
        )

    def enum(self, args: list[Any]) -> ProtoEnum:
        reserved = _find_many(args, _Reserved)
        return ProtoEnum(
            name=str(_tokens(args, "IDENT")[0]),
            values=_find_many(args, ProtoEnumValue),
            options=_find_many(args, ProtoOption),
            reserved_ranges=[r for item in reserved for r in item.ranges],
            reserved_names=[n for item in reserved for n in item.names],
        )

    # -- services --

    def method_type(self, args: list[Any]) -> _MethodType:
        return _MethodType(
            streaming=bool(_tokens(args, "STREAM")),
            type_name=_find_one(args, _TypeRef),
        )

    def rpc(self, args: list[Any]) -> ProtoMethod:
        request, response = _find_many(args, _MethodType)
        return ProtoMethod(
            name=str(_tokens(args, "IDENT")[0]),
            input_type=request.type_name,
            output_type=response.type_name,
            client_streaming=request.streaming,
            server_streaming=response.streaming,
            options=_find_many(args, ProtoOption),
        )

    def service(self, args: list[Any]) -> ProtoService:
        return ProtoService(
            name=str(_tokens(args, "IDENT")[0]),
            methods=_find_many(args, ProtoMethod),
            options=_find_many(args, ProtoOption),
        )

    # -- names --

    def relative_type(self, args: list[Any]) -> _TypeRef:
        return _TypeRef(value=args[0].value)

    def absolute_type(self, args: list[Any]) -> _TypeRef:
        return _TypeRef(value=f".{args[0].value}")

    def full_ident(self, args: list[Any]) -> _Name:
        return _Name(value=".".join(str(part) for part in args))

    def string_lit(self, args: list[Any]) -> _String:
        return _String(value="".join(_unquote(str(part)) for part in args))


def _validate_message(message: ProtoMessage, syntax: str, scope: str) -> None:
    name = f"{scope}.{message.name}" if scope else message.name
    numbers: dict[int, str] = {}
    names: set[str] = set()

    for f in message.fields:
        if f.name in names:
            raise ValidationError(f"{name}: duplicate field name {f.name}")
        names.add(f.name)

        if f.number < 1 or f.number > MAX_FIELD_NUMBER:
            raise ValidationError(f"{name}.{f.name}: field number {f.number} out of range")
        if f.number in RESERVED_FIELD_NUMBERS:
            raise ValidationError(
                f"{name}.{f.name}: field numbers 19000 through 19999 are reserved"
            )
        if f.number in numbers:
            raise ValidationError(
                f"{name}.{f.name}: field number {f.number} already used by {numbers[f.number]}"
            )
        numbers[f.number] = f.name

        if syntax == "proto3" and f.label == "required":
            raise ValidationError(f"{name}.{f.name}: required fields are not allowed in proto3")
        if f.oneof and f.label == "repeated":
            raise ValidationError(f"{name}.{f.name}: oneof fields cannot be repeated")

        for r in message.reserved_ranges:
            end = MAX_FIELD_NUMBER if r.end is None else r.end
            if r.start <= f.number <= end:
                raise ValidationError(f"{name}.{f.name}: field number {f.number} is reserved")
        if f.name in message.reserved_names:
            raise ValidationError(f"{name}.{f.name}: field name is reserved")

    for nested in message.messages:
        _validate_message(nested, syntax, name)
    for enum in message.enums:
        _validate_enum(enum, syntax, name)


def _validate_enum(enum: ProtoEnum, syntax: str, scope: str) -> None:
    name = f"{scope}.{enum.name}" if scope else enum.name

    if not enum.values:
        raise ValidationError(f"{name}: enums must contain at least one value")
    if syntax == "proto3" and enum.values[0].number != 0:
        raise ValidationError(f"{name}: the first enum value must be zero in proto3")

    allow_alias = any(opt.name == "allow_alias" and opt.value is True for opt in enum.options)
    seen: dict[int, str] = {}
    for value in enum.values:
        if value.number in seen and not allow_alias:
            raise ValidationError(
                f"{name}.{value.name}: value {value.number} already used by {seen[value.number]}"
                " (set allow_alias to permit this)"
            )
        seen.setdefault(value.number, value.name)


def validate(proto_file: ProtoFile) -> None:
    """Validate a parsed .proto file."""
    for message in proto_file.messages:
        _validate_message(message, proto_file.syntax, proto_file.package)
    for enum in proto_file.enums:
        _validate_enum(enum, proto_file.syntax, proto_file.package)

    for service in proto_file.services:
        method_names: set[str] = set()
        for method in service.methods:
            if method.name in method_names:
                raise ValidationError(f"{service.name}: duplicate method {method.name}")
            method_names.add(method.name)


def parse(text: str, filename: str | None = None) -> ProtoFile:
    """Parse a .proto source into a ProtoFile."""
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/proto.lark", encoding="utf-8") as f:
            grammar = f.read()

        # Earley handles keywords that double as identifiers (e.g. a field named "message")
        _g_parser = Lark(grammar)

    try:
        tree = _g_parser.parse(text)
        proto_file = TreeTransformer().transform(tree)
    except UnexpectedEOF as err:
        raise SchemaSyntaxError("unexpected end of file", filename) from err
    except UnexpectedInput as err:
        raise SchemaSyntaxError(
            f"unexpected input {err.get_context(text).strip()!r}", filename, err.line, err.column
        ) from err
    except VisitError as err:
        raise SchemaSyntaxError(str(err.orig_exc), filename) from err

    validate(proto_file)
    return proto_file
