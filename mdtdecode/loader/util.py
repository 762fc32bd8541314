"""Name conversion helpers."""

import re

_WORD_RE = re.compile(r"[A-Z]{2,}(?=[A-Z][a-z]+|[0-9]|\b|_)|[A-Z]?[a-z]+|[A-Z]+|[0-9]+")


def json_name(name: str) -> str:
    """Convert a field name to its protobuf JSON name (`foo_bar` -> `fooBar`)."""
    result = []
    capitalize_next = False
    for ch in name:
        if ch == "_":
            capitalize_next = True
        elif capitalize_next:
            result.append(ch.upper())
            capitalize_next = False
        else:
            result.append(ch)
    return "".join(result)


def lower_camel_case(name: str) -> str:
    """Convert a name to lower camel case by words (`MdtDialout` -> `mdtDialout`)."""
    words = _WORD_RE.findall(name)
    if not words:
        return name
    return words[0].lower() + "".join(word.capitalize() for word in words[1:])


def map_entry_name(field_name: str) -> str:
    """Name of the synthesized entry message for a map field (`my_map` -> `MyMapEntry`)."""
    camel = json_name(field_name)
    return f"{camel[:1].upper()}{camel[1:]}Entry"
