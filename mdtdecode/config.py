"""Service configuration, loadable from a JSON file."""

import os
from dataclasses import dataclass, field

from dataclasses_json import DataClassJsonMixin

from .loader.options import CodecOptions

PROTO_DIR = os.path.join(os.path.dirname(__file__), "protos")
TELEMETRY_PROTO = os.path.join(PROTO_DIR, "telemetry.proto")
DIALOUT_PROTO = os.path.join(PROTO_DIR, "mdt_grpc_dialout.proto")

DEFAULT_PORT = 57890


@dataclass
class ServiceConfig(DataClassJsonMixin):
    """Settings for the dial-out receiver.

    Schema paths left unset use the copies bundled with the package.
    """

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    include_dirs: list[str] = field(default_factory=list)
    telemetry_proto: str | None = None
    dialout_proto: str | None = None
    log_level: str = "INFO"
    codec: CodecOptions = field(default_factory=CodecOptions)

    @property
    def telemetry_path(self) -> str:
        return self.telemetry_proto or TELEMETRY_PROTO

    @property
    def dialout_path(self) -> str:
        return self.dialout_proto or DIALOUT_PROTO


def load_config(path: str) -> ServiceConfig:
    with open(path, encoding="utf-8") as f:
        return ServiceConfig.from_json(f.read())
