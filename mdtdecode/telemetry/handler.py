"""Decoding a stream of telemetry envelopes into nested mappings."""

import asyncio
import logging
from collections.abc import AsyncIterable
from dataclasses import dataclass, replace
from typing import Any

from ..loader.cache import SchemaCache
from ..loader.definitions import MessageDefinition
from ..loader.options import CodecOptions
from .values import reconstruct

logger = logging.getLogger(__name__)

ENVELOPE_TYPE = "telemetry.Telemetry"
ENVELOPE_OPTIONS = CodecOptions(keep_case=True)


class TelemetryDecodeError(RuntimeError):
    """Raised when an envelope decodes but carries no key/value data."""


@dataclass
class DecodedTelemetry:
    """One successfully decoded payload."""

    sequence: int
    envelope: dict[str, Any]
    data: dict[str, Any]

    @property
    def encoding_path(self) -> str | None:
        return self.envelope.get("encoding_path")

    @property
    def node_id(self) -> str | None:
        return self.envelope.get("node_id_str")


@dataclass
class DecodeFailure:
    sequence: int
    size: int
    error: BaseException


@dataclass
class StreamSummary:
    decoded: int = 0
    failed: int = 0
    error: BaseException | None = None


class TelemetryObserver:
    """Receives decode results; the default implementation logs them."""

    def on_decoded(self, result: DecodedTelemetry) -> None:
        logger.info("#%d %s: %s", result.sequence, result.encoding_path, result.data)

    def on_failure(self, failure: DecodeFailure) -> None:
        logger.warning(
            "#%d: failed to decode %d byte payload: %s",
            failure.sequence, failure.size, failure.error,
        )

    def on_end(self, summary: StreamSummary) -> None:
        logger.info("stream ended: %d decoded, %d failed", summary.decoded, summary.failed)


@dataclass
class _Pending:
    sequence: int
    size: int
    task: "asyncio.Task[DecodedTelemetry]"


class TelemetryStreamHandler:
    """Decodes payloads with the telemetry envelope schema held in `cache`.

    Every payload is decoded in its own task. A failed payload is reported to
    the observer and never ends the stream.
    """

    def __init__(self, cache: SchemaCache, telemetry_proto: str,
                 include_dirs: tuple[str, ...] | list[str] = (),
                 observer: TelemetryObserver | None = None,
                 options: CodecOptions | None = None) -> None:
        self.cache = cache
        # Envelope keys are read by their declared names
        self.options = replace(options or ENVELOPE_OPTIONS, keep_case=True)
        self.telemetry_proto = telemetry_proto
        self.include_dirs = tuple(include_dirs)
        self.observer = observer or TelemetryObserver()
        # Decodes not yet delivered, across all streams
        self.in_flight: set[asyncio.Task[DecodedTelemetry]] = set()
        self._sequence = 0

    async def envelope_definition(self) -> MessageDefinition:
        package = await self.cache.get(self.telemetry_proto, self.options, self.include_dirs)
        return package[ENVELOPE_TYPE]

    async def decode(self, payload: bytes, sequence: int = 0) -> DecodedTelemetry:
        """Decode one envelope and rebuild its first key/value group."""
        definition = await self.envelope_definition()
        envelope = definition.deserialize(payload)

        groups = envelope.get("data_gpbkv") or []
        if not groups:
            raise TelemetryDecodeError("telemetry message carries no data_gpbkv group")
        if len(groups) > 1:
            logger.debug("ignoring %d extra data_gpbkv groups", len(groups) - 1)

        data = reconstruct({}, groups[0].get("fields") or [])
        return DecodedTelemetry(sequence=sequence, envelope=envelope, data=data)

    async def consume(self, payloads: AsyncIterable[bytes]) -> StreamSummary:
        """Decode every payload until the stream ends or fails."""
        summary = StreamSummary()
        pending: set[asyncio.Task[DecodedTelemetry]] = set()

        try:
            async for payload in payloads:
                self._sequence += 1
                task = asyncio.ensure_future(self.decode(payload, self._sequence))
                entry = _Pending(self._sequence, len(payload), task)
                pending.add(task)
                self.in_flight.add(task)
                task.add_done_callback(
                    lambda _, entry=entry: self._deliver(entry, summary, pending)
                )
        except Exception as err:  # transport failure
            logger.error("telemetry stream failed: %s", err)
            summary.error = err

        # Let in-flight decodes finish; results are delivered by their callbacks
        await asyncio.gather(*pending, return_exceptions=True)
        self.observer.on_end(summary)
        return summary

    def _deliver(self, entry: _Pending, summary: StreamSummary,
                 pending: set[asyncio.Task[DecodedTelemetry]]) -> None:
        pending.discard(entry.task)
        self.in_flight.discard(entry.task)
        if entry.task.cancelled():
            summary.failed += 1
            self.observer.on_failure(
                DecodeFailure(entry.sequence, entry.size, asyncio.CancelledError())
            )
            return

        err = entry.task.exception()
        if err is not None:
            summary.failed += 1
            self.observer.on_failure(DecodeFailure(entry.sequence, entry.size, err))
        else:
            summary.decoded += 1
            self.observer.on_decoded(entry.task.result())
