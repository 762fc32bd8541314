"""Tests for the self-describing value decoder."""

from mdtdecode.telemetry import FieldValue, ValueKind, reconstruct


def describe_field_value():
    def detects_nested_fields(expect):
        value = FieldValue.from_mapping({"name": "a", "fields": [{"name": "b", "uint32_value": 5}]})
        expect(value.kind) == ValueKind.FIELDS
        expect(value.value) == (FieldValue("b", ValueKind.UINT32, 5),)

    def accepts_camel_case_keys(expect):
        value = FieldValue.from_mapping({"name": "up", "boolValue": True})
        expect(value.kind) == ValueKind.BOOL
        expect(value.value) == True

    def keeps_zero_values(expect):
        expect(FieldValue.from_mapping({"name": "n", "uint64_value": 0}).value) == 0
        expect(FieldValue.from_mapping({"name": "s", "string_value": ""}).kind) == ValueKind.STRING

    def has_no_kind_without_a_value(expect):
        value = FieldValue.from_mapping({"name": "x"})
        expect(value.kind) == None

    def treats_an_empty_field_list_as_absent(expect):
        value = FieldValue.from_mapping({"name": "x", "fields": [], "sint32_value": -3})
        expect(value.kind) == ValueKind.SINT32

    def follows_the_priority_order(expect):
        expect([kind.value for kind in ValueKind]) == [
            "fields",
            "bytes_value",
            "string_value",
            "bool_value",
            "uint32_value",
            "uint64_value",
            "sint32_value",
            "sint64_value",
            "double_value",
            "float_value",
        ]


def describe_reconstruct():
    def rebuilds_nested_mappings(expect):
        entries = [{"name": "a", "fields": [{"name": "b", "uint32Value": 5}]}]
        expect(reconstruct({}, entries)) == {"a": {"b": 5}}

    def skips_entries_without_a_value(expect):
        expect(reconstruct({}, [{"name": "x"}])) == {}

    def prefers_strings_over_booleans(expect):
        entries = [{"name": "f", "stringValue": "s", "boolValue": True}]
        expect(reconstruct({}, entries)) == {"f": "s"}

    def prefers_nested_fields_over_scalars(expect):
        entries = [{"name": "f", "fields": [{"name": "g", "double_value": 1.5}], "bytes_value": b"x"}]
        expect(reconstruct({}, entries)) == {"f": {"g": 1.5}}

    def populates_the_given_container(expect):
        container = {"existing": 1}
        result = reconstruct(container, [{"name": "new", "sint64_value": -9}])
        expect(result is container) == True
        expect(container) == {"existing": 1, "new": -9}

    def lets_later_duplicates_win(expect):
        entries = [
            {"name": "dup", "uint32_value": 1},
            {"name": "dup", "uint32_value": 2},
        ]
        expect(reconstruct({}, entries)) == {"dup": 2}

    def accepts_field_values(expect):
        entries = [FieldValue("rate", ValueKind.FLOAT, 0.5), FieldValue("none", None)]
        expect(reconstruct({}, entries)) == {"rate": 0.5}

    def rebuilds_deep_nesting(expect):
        entries = [
            {
                "name": "interfaces",
                "fields": [
                    {
                        "name": "GigabitEthernet0/0/0/0",
                        "fields": [
                            {"name": "state", "string_value": "up"},
                            {"name": "counters", "fields": [{"name": "in_octets", "uint64_value": 42}]},
                        ],
                    }
                ],
            }
        ]
        expect(reconstruct({}, entries)) == {
            "interfaces": {
                "GigabitEthernet0/0/0/0": {"state": "up", "counters": {"in_octets": 42}}
            }
        }
