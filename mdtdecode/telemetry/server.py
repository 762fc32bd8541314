"""gRPC dial-out receiver feeding payloads into a TelemetryStreamHandler."""

import logging
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any

import grpc

from ..config import ServiceConfig
from ..loader.cache import SchemaCache
from ..loader.definitions import MethodDefinition, ServiceDefinition
from ..loader.options import CodecOptions
from .handler import TelemetryObserver, TelemetryStreamHandler

logger = logging.getLogger(__name__)

DIALOUT_SERVICE = "mdt_dialout.gRPCMdtDialout"
DIALOUT_METHOD = "MdtDialout"
DIALOUT_OPTIONS = CodecOptions(keep_case=True)


def _method_handler(method: MethodDefinition, behavior: Callable) -> grpc.RpcMethodHandler:
    kwargs = {
        "request_deserializer": method.request_deserialize,
        "response_serializer": method.response_serialize,
    }
    if method.request_stream and method.response_stream:
        return grpc.stream_stream_rpc_method_handler(behavior, **kwargs)
    if method.request_stream:
        return grpc.stream_unary_rpc_method_handler(behavior, **kwargs)
    if method.response_stream:
        return grpc.unary_stream_rpc_method_handler(behavior, **kwargs)
    return grpc.unary_unary_rpc_method_handler(behavior, **kwargs)


def service_handler(service: ServiceDefinition,
                    implementations: Mapping[str, Callable]) -> grpc.GenericRpcHandler:
    """Build a generic handler serving `implementations` for a loaded service."""
    handlers = {
        name: _method_handler(method, implementations[name])
        for name, method in service.items()
        if name in implementations
    }
    return grpc.method_handlers_generic_handler(service.name, handlers)


def dialout_behavior(handler: TelemetryStreamHandler):
    """The MdtDialout implementation: every request's `data` is one payload."""

    async def mdt_dialout(requests: AsyncIterator[dict[str, Any]], context) -> None:
        peer = context.peer()
        logger.info("dial-out stream opened by %s", peer)

        async def payloads() -> AsyncIterator[bytes]:
            async for args in requests:
                if args.get("errors"):
                    logger.warning("%s reported: %s", peer, args["errors"])
                data = args.get("data")
                if data:
                    yield data

        summary = await handler.consume(payloads())
        logger.info(
            "dial-out stream from %s closed: %d decoded, %d failed",
            peer, summary.decoded, summary.failed,
        )

    return mdt_dialout


async def create_server(config: ServiceConfig, cache: SchemaCache | None = None,
                        observer: TelemetryObserver | None = None) -> tuple[grpc.aio.Server, int]:
    """Create (but do not start) a dial-out server; returns it with its bound port."""
    cache = cache or SchemaCache()
    package = await cache.get(config.dialout_path, DIALOUT_OPTIONS, config.include_dirs)
    service = package[DIALOUT_SERVICE]

    handler = TelemetryStreamHandler(
        cache, config.telemetry_path, config.include_dirs, observer, config.codec
    )
    # Load the envelope schema up front so a broken schema fails at startup
    await handler.envelope_definition()

    server = grpc.aio.server()
    server.add_generic_rpc_handlers(
        (service_handler(service, {DIALOUT_METHOD: dialout_behavior(handler)}),)
    )
    port = server.add_insecure_port(f"{config.host}:{config.port}")
    return server, port


async def serve(config: ServiceConfig, observer: TelemetryObserver | None = None) -> None:
    server, port = await create_server(config, observer=observer)
    await server.start()
    logger.info("listening for dial-out connections on %s:%d", config.host, port)
    try:
        await server.wait_for_termination()
    finally:
        await server.stop(grace=1.0)
