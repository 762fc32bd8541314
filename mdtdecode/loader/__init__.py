"""Runtime loading of .proto schemas into message codecs."""

from .cache import SchemaCache as SchemaCache
from .definitions import EnumDefinition as EnumDefinition
from .definitions import MessageDefinition as MessageDefinition
from .definitions import MethodDefinition as MethodDefinition
from .definitions import PackageDefinition as PackageDefinition
from .definitions import ServiceDefinition as ServiceDefinition
from .definitions import create_package_definition as create_package_definition
from .errors import *
from .options import BytesRepresentation as BytesRepresentation
from .options import CodecOptions as CodecOptions
from .options import EnumRepresentation as EnumRepresentation
from .options import LongRepresentation as LongRepresentation
from .package import load as load
from .package import load_file_descriptor_set as load_file_descriptor_set
from .package import load_file_descriptor_set_from_object as load_file_descriptor_set_from_object
from .package import load_sync as load_sync
from .parser import parse as parse
from .resolver import FileSystemSource as FileSystemSource
from .resolver import SchemaResolver as SchemaResolver
from .resolver import SchemaSource as SchemaSource
from .resolver import resolve as resolve
