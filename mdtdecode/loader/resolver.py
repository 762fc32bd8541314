"""Loading a root .proto file and its transitive imports into a type graph."""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from google.protobuf.descriptor_pb2 import FileDescriptorSet

from .descriptors import file_from_descriptor
from .errors import ImportCycleError, ImportNotFoundError
from .graph import Root, SchemaFile
from .parser import parse
from .types import ProtoFile
from .well_known import is_well_known, well_known_file

logger = logging.getLogger(__name__)

_BUILTIN = "<builtin>"


class SchemaSource(Protocol):
    """Filesystem boundary used by the resolver."""

    async def read_text(self, path: str) -> str: ...

    def exists(self, path: str) -> bool: ...


class FileSystemSource:
    """Reads schema files from disk off the event loop."""

    async def read_text(self, path: str) -> str:
        return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")

    def exists(self, path: str) -> bool:
        return os.path.isfile(path) and os.access(path, os.R_OK)


class SchemaResolver:
    """Resolves a root file plus its imports into one linked `Root`.

    Imports are looked up in this order:
    - absolute paths, used verbatim
    - each include directory, first readable match wins
    - google/protobuf/*.proto files compiled into the protobuf runtime
    - the directory of the importing file, with a warning

    A relative root file is looked up on the include directories before the
    path as given. Import cycles are rejected.
    """

    def __init__(self, include_dirs: tuple[str, ...] | list[str] = (),
                 source: SchemaSource | None = None) -> None:
        self.include_dirs = tuple(include_dirs)
        self.source = source or FileSystemSource()

    async def resolve(self, filenames: str | list[str]) -> Root:
        if isinstance(filenames, str):
            filenames = [filenames]

        root = Root()
        state = _LoadState()
        for filename in filenames:
            path = self._locate_root(filename)
            await self._load(root, filename, path, state)
        root.resolve_all()
        return root

    def _locate_root(self, filename: str) -> str:
        if not os.path.isabs(filename):
            for include_dir in self.include_dirs:
                candidate = os.path.join(include_dir, filename)
                if self.source.exists(candidate):
                    return candidate
        if self.source.exists(filename):
            return filename
        raise ImportNotFoundError(filename, self.include_dirs)

    def _locate_import(self, target: str, origin: str | None) -> str | None:
        """Return the path of an import, or None for a built-in well-known file."""
        if os.path.isabs(target):
            if self.source.exists(target):
                return target
            raise ImportNotFoundError(target, self.include_dirs)

        for include_dir in self.include_dirs:
            candidate = os.path.join(include_dir, target)
            if self.source.exists(candidate):
                return candidate

        if is_well_known(target):
            return None

        if origin is not None:
            candidate = os.path.join(os.path.dirname(origin), target)
            logger.warning(
                "%s not found in any of the include paths %s, trying %s",
                target, list(self.include_dirs), candidate,
            )
            if self.source.exists(candidate):
                return candidate
        raise ImportNotFoundError(target, self.include_dirs)

    async def _load(self, root: Root, name: str, path: str | None, state: "_LoadState") -> str:
        """Load a file once and return the name it is registered under.

        A file reached again under another import name keeps the name it was
        first loaded with.
        """
        key = f"{_BUILTIN}/{name}" if path is None else os.path.normpath(os.path.abspath(path))
        if key in state.loading:
            start = state.loading.index(key)
            raise ImportCycleError([state.names[k] for k in state.loading[start:]] + [name])
        if key in state.names:
            return state.names[key]
        state.names[key] = name

        if path is None:
            logger.debug("using built-in %s", name)
            ast = well_known_file(name)
        else:
            logger.debug("loading %s from %s", name, path)
            ast = parse(await self.source.read_text(path), path)

        state.loading.append(key)
        dependencies = []
        for imp in ast.imports:
            target = self._locate_import(imp.path, path)
            dependencies.append(await self._load(root, imp.path, target, state))
        state.loading.pop()

        root.add_file(_schema_file(name, path, ast, dependencies))
        return name


@dataclass
class _LoadState:
    names: dict[str, str] = field(default_factory=dict)
    loading: list[str] = field(default_factory=list)


def _schema_file(name: str, path: str | None, ast: ProtoFile,
                 dependencies: list[str] | None = None) -> SchemaFile:
    if dependencies is None:
        dependencies = [imp.path for imp in ast.imports]

    names: list[str] = []
    public: list[int] = []
    for dependency, imp in zip(dependencies, ast.imports):
        if dependency not in names:
            names.append(dependency)
        index = names.index(dependency)
        if imp.modifier == "public" and index not in public:
            public.append(index)

    return SchemaFile(
        name=name,
        path=path,
        ast=ast,
        dependencies=names,
        public_dependencies=public,
    )


async def resolve(filename: str | list[str], include_dirs: tuple[str, ...] | list[str] = (),
                  source: SchemaSource | None = None) -> Root:
    """Load `filename` and its imports into a fully linked graph."""
    return await SchemaResolver(include_dirs, source).resolve(filename)


def graph_from_descriptor_set(descriptor_set: FileDescriptorSet) -> Root:
    """Build a linked graph from compiled file descriptors."""
    root = Root()
    for proto in descriptor_set.file:
        ast = file_from_descriptor(proto)
        root.add_file(_schema_file(proto.name, None, ast))
    root.resolve_all()
    return root
