"""Tests for the .proto parser."""

import pytest

from mdtdecode.loader import SchemaSyntaxError, ValidationError, parse


def describe_parse_file():
    def parses_syntax_and_package(expect):
        proto = parse(
            """
            syntax = "proto3";
            package demo.v1;
        """
        )
        expect(proto.syntax) == "proto3"
        expect(proto.package) == "demo.v1"

    def defaults_to_proto2(expect):
        proto = parse("message Empty {}")
        expect(proto.syntax) == "proto2"
        expect(proto.package) == ""

    def parses_imports_with_modifiers(expect):
        proto = parse(
            """
            import "a.proto";
            import public "b.proto";
            import weak "c.proto";
        """
        )
        expect([(i.path, i.modifier) for i in proto.imports]) == [
            ("a.proto", None),
            ("b.proto", "public"),
            ("c.proto", "weak"),
        ]

    def joins_adjacent_strings(expect):
        proto = parse('import "common/" "shapes.proto";')
        expect(proto.imports[0].path) == "common/shapes.proto"

    def parses_file_options(expect):
        proto = parse(
            """
            option java_package = "com.example";
            option optimize_for = SPEED;
            option (my.custom).enabled = true;
        """
        )
        expect([(o.name, o.value) for o in proto.options]) == [
            ("java_package", "com.example"),
            ("optimize_for", "SPEED"),
            ("(my.custom).enabled", True),
        ]

    def skips_comments(expect):
        proto = parse(
            """
            // line comment
            /* block
               comment */
            message Commented { int32 a = 1; // trailing
            }
        """
        )
        expect(proto.messages[0].fields[0].name) == "a"


def describe_parse_message():
    def parses_scalar_fields(expect):
        proto = parse(
            """
            syntax = "proto3";
            message Reading {
                string name = 1;
                double value = 2;
                repeated uint64 samples = 3;
            }
        """
        )
        message = proto.messages[0]
        expect(message.name) == "Reading"
        expect([(f.name, f.number, f.type_name, f.label) for f in message.fields]) == [
            ("name", 1, "string", None),
            ("value", 2, "double", None),
            ("samples", 3, "uint64", "repeated"),
        ]

    def parses_map_fields(expect):
        proto = parse(
            """
            syntax = "proto3";
            message Labels { map<string, int32> counts = 1; }
        """
        )
        f = proto.messages[0].fields[0]
        expect(f.map_key_type) == "string"
        expect(f.type_name) == "int32"
        expect(f.label) == "repeated"

    def keeps_oneof_fields_in_declaration_order(expect):
        proto = parse(
            """
            syntax = "proto3";
            message Value {
                string name = 1;
                oneof kind {
                    string text = 2;
                    int64 number = 3;
                }
                bool flag = 4;
            }
        """
        )
        message = proto.messages[0]
        expect(message.oneofs) == ["kind"]
        expect([(f.name, f.oneof) for f in message.fields]) == [
            ("name", None),
            ("text", "kind"),
            ("number", "kind"),
            ("flag", None),
        ]

    def parses_nested_types_and_references(expect):
        proto = parse(
            """
            syntax = "proto3";
            message Outer {
                message Inner { int32 x = 1; }
                enum State { UNKNOWN = 0; READY = 1; }
                Inner inner = 1;
                .other.Type absolute = 2;
                State state = 3;
            }
        """
        )
        outer = proto.messages[0]
        expect(outer.messages[0].name) == "Inner"
        expect(outer.enums[0].name) == "State"
        expect([f.type_name for f in outer.fields]) == ["Inner", ".other.Type", "State"]

    def parses_field_options(expect):
        proto = parse(
            """
            message Options {
                repeated int32 packed_values = 1 [packed = true, deprecated = true];
                optional string named = 2 [json_name = "renamed", default = "x"];
            }
        """
        )
        packed, named = proto.messages[0].fields
        expect(packed.option("packed")) == True
        expect(packed.option("deprecated")) == True
        expect(named.option("json_name")) == "renamed"
        expect(named.option("default")) == "x"
        expect(named.option("missing", 7)) == 7

    def parses_reserved_and_extensions(expect):
        proto = parse(
            """
            message Reserved {
                reserved 2, 5 to 9, 100 to max;
                reserved "old", "older";
                extensions 1000 to 1999;
                int32 a = 1;
            }
        """
        )
        message = proto.messages[0]
        expect([(r.start, r.end) for r in message.reserved_ranges]) == [
            (2, 2),
            (5, 9),
            (100, None),
        ]
        expect(message.reserved_names) == ["old", "older"]
        expect([(r.start, r.end) for r in message.extension_ranges]) == [(1000, 1999)]

    def parses_hex_and_negative_numbers(expect):
        proto = parse(
            """
            enum Flags {
                NONE = 0;
                HIGH = 0x10;
                NEGATIVE = -1;
            }
        """
        )
        expect([v.number for v in proto.enums[0].values]) == [0, 16, -1]


def describe_parse_service():
    def parses_streaming_flags(expect):
        proto = parse(
            """
            syntax = "proto3";
            message Req {}
            message Resp {}
            service Feed {
                rpc Get(Req) returns (Resp);
                rpc Watch(Req) returns (stream Resp) {}
                rpc Chat(stream Req) returns (stream Resp) {
                    option deprecated = true;
                };
            }
        """
        )
        service = proto.services[0]
        expect(service.name) == "Feed"
        expect(
            [(m.name, m.client_streaming, m.server_streaming) for m in service.methods]
        ) == [
            ("Get", False, False),
            ("Watch", False, True),
            ("Chat", True, True),
        ]
        expect(service.methods[2].options[0].name) == "deprecated"


def describe_validation():
    def rejects_duplicate_field_numbers(expect):
        with pytest.raises(ValidationError) as exc:
            parse("message Dup { int32 a = 1; int32 b = 1; }")
        expect(str(exc.value)).includes("already used by a")

    def rejects_duplicate_field_names(expect):
        with pytest.raises(ValidationError) as exc:
            parse("message Dup { int32 a = 1; int32 a = 2; }")
        expect(str(exc.value)).includes("duplicate field name a")

    def rejects_reserved_implementation_numbers(expect):
        with pytest.raises(ValidationError) as exc:
            parse("message Bad { int32 a = 19500; }")
        expect(str(exc.value)).includes("19000 through 19999")

    def rejects_fields_in_reserved_ranges(expect):
        with pytest.raises(ValidationError) as exc:
            parse("message Bad { reserved 1 to 3; int32 a = 2; }")
        expect(str(exc.value)).includes("is reserved")

    def rejects_required_in_proto3(expect):
        with pytest.raises(ValidationError) as exc:
            parse('syntax = "proto3"; message Bad { required int32 a = 1; }')
        expect(str(exc.value)).includes("required fields are not allowed")

    def rejects_proto3_enum_without_zero(expect):
        with pytest.raises(ValidationError) as exc:
            parse('syntax = "proto3"; enum Bad { ONE = 1; }')
        expect(str(exc.value)).includes("must be zero")

    def allows_enum_aliases_when_enabled(expect):
        proto = parse(
            """
            enum Aliased {
                option allow_alias = true;
                A = 0;
                B = 0;
            }
        """
        )
        expect(len(proto.enums[0].values)) == 2

    def rejects_enum_aliases_by_default(expect):
        with pytest.raises(ValidationError):
            parse("enum Aliased { A = 0; B = 0; }")

    def rejects_duplicate_methods(expect):
        with pytest.raises(ValidationError):
            parse(
                """
                message M {}
                service S {
                    rpc Call(M) returns (M);
                    rpc Call(M) returns (M);
                }
            """
            )


def describe_syntax_errors():
    def reports_location(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse("message Broken {\n  int32 = 1;\n}", "broken.proto")
        expect(exc.value.filename) == "broken.proto"
        expect(exc.value.line) == 2
        expect(str(exc.value)).includes("broken.proto:2:")

    def rejects_unclosed_brace(expect):
        with pytest.raises(SchemaSyntaxError):
            parse("message Broken { int32 a = 1;")

    def rejects_unknown_syntax(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse('syntax = "proto4";')
        expect(str(exc.value)).includes("proto4")

    def rejects_editions(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse('edition = "2023";')
        expect(str(exc.value)).includes("Editions are not supported")
