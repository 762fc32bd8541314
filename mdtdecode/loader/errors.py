"""Exceptions raised while loading schemas and running message codecs."""


class SchemaError(RuntimeError):
    """Base exception for schema loading failures."""


class SchemaSyntaxError(SchemaError):
    """Raised when a .proto file cannot be parsed."""

    def __init__(self, message: str, filename: str | None = None, line: int | None = None,
                 column: int | None = None) -> None:
        self.filename = filename
        self.line = line
        self.column = column
        location = filename or "<string>"
        if line is not None:
            location = f"{location}:{line}:{column}"
        super().__init__(f"{location}: {message}")


class ValidationError(SchemaError):
    """Raised when a parsed .proto file breaks a declaration rule."""


class ImportNotFoundError(SchemaError):
    """Raised when an import is not found on any include path."""

    def __init__(self, target: str, include_dirs: tuple[str, ...]) -> None:
        self.target = target
        self.include_dirs = include_dirs
        super().__init__(f"{target} not found in any of the include paths {list(include_dirs)}")


class ImportCycleError(SchemaError):
    """Raised when files import each other in a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"import cycle: {' -> '.join(cycle)}")


class UnresolvedReferenceError(SchemaError):
    """Raised when a type reference does not name a known message or enum."""

    def __init__(self, reference: str, scope: str) -> None:
        self.reference = reference
        self.scope = scope
        super().__init__(f"no such type: {reference} (referenced from {scope or '<root>'})")


class DuplicateNameError(SchemaError):
    """Raised when two declarations share a qualified name."""


class CodecError(RuntimeError):
    """Base exception for encode/decode failures."""


class SerializationError(CodecError):
    """Raised when a native value cannot be encoded as a message."""


class DeserializationError(CodecError):
    """Raised when binary data cannot be decoded as a message."""
