"""mdtdecode - Model-driven telemetry receiver with runtime protobuf schemas."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("mdtdecode")
except PackageNotFoundError:
    __version__ = "(local)"
