"""Command-line interface for the telemetry receiver."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.pretty import Pretty
from rich.table import Table

from mdtdecode import __version__
from mdtdecode.config import TELEMETRY_PROTO, ServiceConfig, load_config
from mdtdecode.loader import (
    CodecError,
    CodecOptions,
    EnumDefinition,
    EnumRepresentation,
    MessageDefinition,
    PackageDefinition,
    SchemaCache,
    SchemaError,
    ServiceDefinition,
    load_sync,
)
from mdtdecode.telemetry import TelemetryDecodeError, TelemetryStreamHandler
from mdtdecode.telemetry.server import serve as serve_dialout


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _print_data(data: Any, output_json: bool) -> None:
    if output_json:
        click.echo(json.dumps(data, indent=2, default=_json_default))
    else:
        Console().print(Pretty(data))


@click.group()
@click.version_option(__version__)
def cli() -> None:
    """Model-driven telemetry dial-out receiver."""


@cli.command()
@click.option("--config", "-c", "config_file", help="JSON service configuration")
@click.option("--host", help="Address to listen on")
@click.option("--port", "-p", type=int, help="Port to listen on")
@click.option("--include", "-I", "include_dirs", multiple=True, help="Schema include directory")
@click.option("--telemetry-proto", help="Telemetry envelope schema")
@click.option("--dialout-proto", help="Dial-out service schema")
@click.option("--log-level", help="Logging level")
def serve(
    config_file: str | None,
    host: str | None,
    port: int | None,
    include_dirs: tuple[str, ...],
    telemetry_proto: str | None,
    dialout_proto: str | None,
    log_level: str | None,
) -> None:
    """Receive dial-out telemetry and log each decoded message."""
    config = load_config(config_file) if config_file else ServiceConfig()
    if host:
        config.host = host
    if port:
        config.port = port
    if include_dirs:
        config.include_dirs = list(include_dirs)
    if telemetry_proto:
        config.telemetry_proto = telemetry_proto
    if dialout_proto:
        config.dialout_proto = dialout_proto
    if log_level:
        config.log_level = log_level

    _setup_logging(config.log_level)
    try:
        asyncio.run(serve_dialout(config))
    except SchemaError as err:
        logging.getLogger(__name__).error("failed to load schema: %s", err)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


@cli.command()
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--proto", "proto_file", default=TELEMETRY_PROTO, help="Schema file")
@click.option("--type", "type_name", help="Message type (default: telemetry envelope)")
@click.option("--include", "-I", "include_dirs", multiple=True, help="Schema include directory")
@click.option("--keep-case", is_flag=True, help="Keep field names as declared")
@click.option("--enums-as-strings", is_flag=True, help="Render enum values by name")
@click.option("--defaults", is_flag=True, help="Include fields that are not set")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def decode(
    payload_file: str,
    proto_file: str,
    type_name: str | None,
    include_dirs: tuple[str, ...],
    keep_case: bool,
    enums_as_strings: bool,
    defaults: bool,
    output_json: bool,
) -> None:
    """Decode a captured binary payload."""
    with open(payload_file, "rb") as f:
        payload = f.read()

    try:
        if type_name is None:
            handler = TelemetryStreamHandler(SchemaCache(), proto_file, include_dirs)
            data = asyncio.run(handler.decode(payload)).data
        else:
            options = CodecOptions(
                keep_case=keep_case,
                enums=EnumRepresentation.STRING if enums_as_strings else EnumRepresentation.NUMBER,
                defaults=defaults,
            )
            package = load_sync(proto_file, options, include_dirs)
            definition = package.get(type_name)
            if not isinstance(definition, MessageDefinition):
                raise click.ClickException(f"{type_name} is not a message type in {proto_file}")
            data = definition.deserialize(payload)
    except (SchemaError, CodecError, TelemetryDecodeError) as err:
        raise click.ClickException(str(err)) from err

    _print_data(data, output_json)


@cli.command()
@click.argument("proto_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--include", "-I", "include_dirs", multiple=True, help="Schema include directory")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(proto_file: str, include_dirs: tuple[str, ...], output_json: bool) -> None:
    """List the messages, enums and services a schema defines."""
    try:
        package = load_sync(proto_file, include_dirs=include_dirs)
    except SchemaError as err:
        raise click.ClickException(str(err)) from err

    if output_json:
        _output_json(package)
    else:
        _output_plain(package)


def _kind(definition: Any) -> str:
    if isinstance(definition, ServiceDefinition):
        return "service"
    if isinstance(definition, EnumDefinition):
        return "enum"
    return "message"


def _output_json(package: PackageDefinition) -> None:
    """Output definitions as JSON."""
    data: dict = {}
    for name, definition in package.items():
        entry: dict = {"kind": _kind(definition)}
        if isinstance(definition, ServiceDefinition):
            entry["methods"] = {
                method_name: {
                    "path": method.path,
                    "request": method.request_type.name,
                    "response": method.response_type.name,
                    "request_stream": method.request_stream,
                    "response_stream": method.response_stream,
                }
                for method_name, method in definition.items()
            }
        else:
            entry["type"] = definition.type
        data[name] = entry

    click.echo(json.dumps(data, indent=2))


def _output_plain(package: PackageDefinition) -> None:
    """Output definitions using rich text formatting."""
    console = Console()

    table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    table.add_column("Name", style="white")
    table.add_column("Kind", style="dim")
    table.add_column("Details", style="yellow")

    for name, definition in package.items():
        if isinstance(definition, ServiceDefinition):
            table.add_row(name, "service", "")
            for method in definition.values():
                request = (
                    f"stream {method.request_type.name}"
                    if method.request_stream
                    else method.request_type.name
                )
                response = (
                    f"stream {method.response_type.name}"
                    if method.response_stream
                    else method.response_type.name
                )
                table.add_row(f"  {method.path}", "method", f"{request} -> {response}")
        elif isinstance(definition, EnumDefinition):
            values = definition.type.get("value", [])
            table.add_row(name, "enum", f"{len(values)} values")
        else:
            fields = definition.type.get("field", [])
            table.add_row(name, "message", f"{len(fields)} fields")

    console.print(table)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
