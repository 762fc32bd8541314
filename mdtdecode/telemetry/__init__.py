"""Telemetry envelope decoding and the dial-out receiver."""

from .handler import DecodedTelemetry as DecodedTelemetry
from .handler import DecodeFailure as DecodeFailure
from .handler import StreamSummary as StreamSummary
from .handler import TelemetryDecodeError as TelemetryDecodeError
from .handler import TelemetryObserver as TelemetryObserver
from .handler import TelemetryStreamHandler as TelemetryStreamHandler
from .values import FieldValue as FieldValue
from .values import ValueKind as ValueKind
from .values import reconstruct as reconstruct
