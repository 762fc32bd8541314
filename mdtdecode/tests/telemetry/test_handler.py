"""Tests for the telemetry stream handler."""

import asyncio

import pytest

from mdtdecode.config import TELEMETRY_PROTO
from mdtdecode.loader import CodecOptions, LongRepresentation, SchemaCache, load
from mdtdecode.telemetry import (
    DecodeFailure,
    StreamSummary,
    TelemetryDecodeError,
    TelemetryObserver,
    TelemetryStreamHandler,
)
from mdtdecode.telemetry.handler import ENVELOPE_OPTIONS, ENVELOPE_TYPE

MALFORMED = b"\x5a\x05\x01"


class RecordingObserver(TelemetryObserver):
    def __init__(self):
        self.decoded = []
        self.failures = []
        self.summaries = []

    def on_decoded(self, result):
        self.decoded.append(result)

    def on_failure(self, failure):
        self.failures.append(failure)

    def on_end(self, summary):
        self.summaries.append(summary)


class ReleasingObserver(RecordingObserver):
    """Sets `gate` once the second payload has been delivered."""

    def __init__(self, gate):
        super().__init__()
        self.gate = gate

    def on_decoded(self, result):
        super().on_decoded(result)
        if result.sequence == 2:
            self.gate.set()


class GatedHandler(TelemetryStreamHandler):
    """Holds the first payload's decode until `gate` is set."""

    gate = None

    async def decode(self, payload, sequence=0):
        if sequence == 1:
            await self.gate.wait()
        return await super().decode(payload, sequence)


def _envelope(cache, value):
    async def encode():
        package = await cache.get(TELEMETRY_PROTO, ENVELOPE_OPTIONS)
        return package[ENVELOPE_TYPE].serialize(value)

    return asyncio.run(encode())


def _reading(path, rate):
    return {
        "node_id_str": "router-1",
        "encoding_path": path,
        "collection_id": 7,
        "data_gpbkv": [
            {
                "timestamp": 1700000000000,
                "fields": [
                    {"name": "keys", "fields": [{"name": "interface", "string_value": "Gi0/0"}]},
                    {"name": "content", "fields": [{"name": "rate", "uint64_value": rate}]},
                ],
            }
        ],
    }


async def _stream(payloads, error=None):
    for payload in payloads:
        await asyncio.sleep(0)
        yield payload
    if error is not None:
        raise error


@pytest.fixture
def cache():
    return SchemaCache()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def handler(cache, observer):
    return TelemetryStreamHandler(cache, TELEMETRY_PROTO, observer=observer)


def describe_decode():
    def rebuilds_the_first_key_value_group(expect, cache, handler):
        payload = _envelope(cache, _reading("Cisco-IOS-XR-infra-statsd-oper:infra-statistics", 10))

        result = asyncio.run(handler.decode(payload, 1))
        expect(result.sequence) == 1
        expect(result.node_id) == "router-1"
        expect(result.encoding_path) == "Cisco-IOS-XR-infra-statsd-oper:infra-statistics"
        expect(result.data) == {"keys": {"interface": "Gi0/0"}, "content": {"rate": 10}}

    def rebuilds_nested_groups(expect, cache, handler):
        value = {
            "data_gpbkv": [
                {"fields": [{"name": "a", "fields": [{"name": "b", "uint32_value": 5}]}]}
            ]
        }

        result = asyncio.run(handler.decode(_envelope(cache, value)))
        expect(result.data) == {"a": {"b": 5}}

    def ignores_extra_groups(expect, cache, handler):
        value = _reading("p", 1)
        value["data_gpbkv"].append({"fields": [{"name": "extra", "bool_value": True}]})

        result = asyncio.run(handler.decode(_envelope(cache, value)))
        expect("extra" in result.data) == False

    def keeps_declared_names_with_configured_options(expect, cache, observer):
        options = CodecOptions(longs=LongRepresentation.STRING)
        handler = TelemetryStreamHandler(cache, TELEMETRY_PROTO, observer=observer, options=options)
        payload = _envelope(cache, _reading("p", 12))

        result = asyncio.run(handler.decode(payload))
        expect(handler.options.keep_case) == True
        expect(result.node_id) == "router-1"
        expect(result.data["content"]["rate"]) == "12"

    def rejects_envelopes_without_data(expect, cache, handler):
        payload = _envelope(cache, {"encoding_path": "p"})
        with pytest.raises(TelemetryDecodeError):
            asyncio.run(handler.decode(payload))


def describe_consume():
    def isolates_a_malformed_payload(expect, cache, handler, observer):
        good = _envelope(cache, _reading("p", 1))
        later = _envelope(cache, _reading("p", 2))

        summary = asyncio.run(handler.consume(_stream([good, MALFORMED, later])))

        expect(summary.decoded) == 2
        expect(summary.failed) == 1
        expect(summary.error) == None
        expect(sorted(r.data["content"]["rate"] for r in observer.decoded)) == [1, 2]
        failure = observer.failures[0]
        expect(isinstance(failure, DecodeFailure)) == True
        expect(failure.sequence) == 2
        expect(failure.size) == len(MALFORMED)
        expect(observer.summaries) == [summary]

    def reports_transport_errors_after_in_flight_work(expect, cache, handler, observer):
        good = _envelope(cache, _reading("p", 3))
        error = ConnectionResetError("peer went away")

        summary = asyncio.run(handler.consume(_stream([good], error)))

        expect(summary.error is error) == True
        expect(summary.decoded) == 1
        expect(len(observer.decoded)) == 1

    def handles_an_empty_stream(expect, handler, observer):
        summary = asyncio.run(handler.consume(_stream([])))
        expect(summary) == StreamSummary()
        expect(observer.summaries) == [StreamSummary()]

    def loads_the_envelope_schema_once(expect, observer):
        calls = []

        async def counting(*args):
            calls.append(args)
            return await load(*args)

        handler = TelemetryStreamHandler(SchemaCache(counting), TELEMETRY_PROTO, observer=observer)
        summary = asyncio.run(handler.consume(_stream([b""] * 10)))

        expect(len(calls)) == 1
        expect(summary.failed) == 10

    def numbers_payloads_across_streams(expect, cache, handler, observer):
        payload = _envelope(cache, _reading("p", 1))
        asyncio.run(handler.consume(_stream([payload])))
        asyncio.run(handler.consume(_stream([payload])))
        expect([r.sequence for r in observer.decoded]) == [1, 2]

    def drops_payloads_once_they_are_delivered(expect, cache, handler, observer):
        payload = _envelope(cache, _reading("p", 1))
        remaining = []

        async def payloads():
            for _ in range(3):
                yield payload
                for _ in range(100):
                    if not handler.in_flight:
                        break
                    await asyncio.sleep(0)
                remaining.append(len(handler.in_flight))

        summary = asyncio.run(handler.consume(payloads()))

        expect(remaining) == [0, 0, 0]
        expect(summary.decoded) == 3
        expect(handler.in_flight) == set()

    def keeps_decoding_while_an_earlier_payload_is_slow(expect, cache):
        gate = asyncio.Event()
        observer = ReleasingObserver(gate)
        handler = GatedHandler(cache, TELEMETRY_PROTO, observer=observer)
        handler.gate = gate
        first = _envelope(cache, _reading("p", 1))
        second = _envelope(cache, _reading("p", 2))

        async def run():
            return await asyncio.wait_for(handler.consume(_stream([first, second])), timeout=5)

        summary = asyncio.run(run())

        expect(summary.decoded) == 2
        expect([r.sequence for r in observer.decoded]) == [2, 1]
