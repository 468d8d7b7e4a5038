#!/usr/bin/env python3
"""Command line for pyplc-ladder using Typer."""

import asyncio
import json
import logging
import struct
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .address import DeviceAddress
from .analyzer import ProgramAnalyzer
from .errors import GatewayIOError, InvalidDeviceError
from .function_blocks import analyze_function_block, list_function_blocks, search_function_blocks
from .gateway import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, GatewayClient
from .parser import parse_program_text
from .reasoner import DeviceReasoner, build_program_contexts
from .search import MAX_RESULTS, CommentSearch
from .store import ProgramStore, load_comment_file, load_function_block_dir, load_program_files, read_export_text
from .tracer import FaultTracer
from .types import BatchReadRequest, DeviceDataType, DeviceReadRequest

app = typer.Typer(
    name="pyplc",
    help="Analyze PLC ladder-program exports and read live device values through a gateway.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

CommentsOption = Annotated[
    Optional[str],
    typer.Option("--comments", "-c", help="Device comment table (CSV/TSV)", envvar="PYPLC_COMMENTS"),
]
ProgramsOption = Annotated[
    Optional[list[str]],
    typer.Option("--program", "-P", help="Program listing export (repeatable)", envvar="PYPLC_PROGRAMS"),
]
FunctionBlocksOption = Annotated[
    Optional[str],
    typer.Option("--fb-dir", help="Directory of <name>_Label.csv / <name>_Program.csv files", envvar="PYPLC_FUNCTION_BLOCKS"),
]
GatewayUrlOption = Annotated[
    str,
    typer.Option("--gateway-url", "-g", help="PLC gateway base URL", envvar="PYPLC_GATEWAY_URL"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Gateway request timeout in seconds", envvar="PYPLC_TIMEOUT"),
]
IpOption = Annotated[
    Optional[str],
    typer.Option("--ip", help="PLC IP address passed through to the gateway"),
]
PortOption = Annotated[
    Optional[int],
    typer.Option("--port", "-p", help="PLC port passed through to the gateway"),
]
PlcHostOption = Annotated[
    Optional[str],
    typer.Option("--plc-host", help="PLC host name known to the gateway"),
]
TransportOption = Annotated[
    Optional[str],
    typer.Option("--transport", help="Gateway transport (e.g. tcp, udp)"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]
SignedOption = Annotated[
    bool,
    typer.Option("--signed", help="Interpret single words as signed 16-bit integers"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


@contextmanager
def cli_errors(verbose: bool) -> Iterator[None]:
    """Map exceptions to exit codes: 2 invalid input, 3 gateway failure, 4 unexpected."""
    try:
        yield
    except typer.Exit:
        raise
    except InvalidDeviceError as e:
        typer.echo(f"Error: Invalid device: {e}", err=True)
        raise typer.Exit(2)
    except GatewayIOError as e:
        typer.echo(f"Error: Gateway error: {e}", err=True)
        raise typer.Exit(3)
    except Exception as e:
        typer.echo(f"Error: Unexpected error: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        raise typer.Exit(4)


def build_store(comments: Optional[str], programs: Optional[list[str]], fb_dir: Optional[str]) -> ProgramStore:
    """Load the exports named on the command line into a fresh ProgramStore."""
    if comments and not Path(comments).is_file():
        typer.echo(f"Error: Comment file not found: {comments}", err=True)
        raise typer.Exit(2)
    for path in programs or ():
        if not Path(path).is_file():
            typer.echo(f"Error: Program file not found: {path}", err=True)
            raise typer.Exit(2)
    if fb_dir and not Path(fb_dir).is_dir():
        typer.echo(f"Error: Function block directory not found: {fb_dir}", err=True)
        raise typer.Exit(2)

    store = ProgramStore()
    store.load(
        comments=load_comment_file(comments) if comments else {},
        programs=load_program_files(programs or ()),
        function_blocks=load_function_block_dir(fb_dir) if fb_dir else (),
    )
    return store


def to_signed(value: int) -> int:
    """Convert unsigned 16-bit to signed."""
    value &= 0xFFFF
    if value > 32767:
        return value - 65536
    return value


def words_to_int32(low: int, high: int) -> int:
    """Two words (low word first) as a signed 32-bit integer."""
    value = (low & 0xFFFF) | ((high & 0xFFFF) << 16)
    if value > 0x7FFFFFFF:
        return value - 0x100000000
    return value


def words_to_float(low: int, high: int) -> float:
    """Two words (low word first) as an IEEE 754 single-precision float."""
    return struct.unpack("<f", struct.pack("<HH", low & 0xFFFF, high & 0xFFFF))[0]


def decode_values(values: list[int] | tuple[int, ...], data_type: DeviceDataType, signed: bool = False) -> list[int | float]:
    """Decode raw words by data type; a trailing odd word of a 32-bit read is dropped."""
    if data_type is DeviceDataType.WORD:
        return [to_signed(v) if signed else v for v in values]
    decode = words_to_float if data_type is DeviceDataType.FLOAT else words_to_int32
    return [decode(values[i], values[i + 1]) for i in range(0, len(values) - 1, 2)]


def format_decoded(value: int | float) -> str:
    if isinstance(value, float):
        return f"{value:.6g}"
    return str(value)


# ============================================================================
# Commands: program analysis
# ============================================================================

@app.command()
def info(
    comments: CommentsOption = None,
    programs: ProgramsOption = None,
    fb_dir: FunctionBlocksOption = None,
    gateway_url: GatewayUrlOption = DEFAULT_BASE_URL,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Show package version, gateway URL and what was loaded from the exports."""
    setup_logging(verbose)

    with cli_errors(verbose):
        store = build_store(comments, programs, fb_dir)
        info_data = {
            "version": __version__,
            "gatewayUrl": gateway_url,
            "comments": len(store.comments),
            "programs": [{"name": p.name, "lines": len(p.lines)} for p in store.programs],
            "functionBlocks": len(store.function_blocks),
        }

        if json_output:
            echo_json(info_data)
        else:
            typer.echo(f"pyplc-ladder version: {info_data['version']}")
            typer.echo(f"Gateway:         {gateway_url}")
            typer.echo(f"Comments:        {info_data['comments']}")
            typer.echo(f"Programs:        {len(store.programs)}")
            for p in store.programs:
                typer.echo(f"  {p.name} ({len(p.lines)} lines)")
            typer.echo(f"Function blocks: {info_data['functionBlocks']}")


@app.command()
def parse(
    file: Annotated[Path, typer.Argument(help="Program listing export to parse")],
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Parse a tab-separated program listing and print its columns line by line."""
    setup_logging(verbose)

    if not file.is_file():
        typer.echo(f"Error: Program file not found: {file}", err=True)
        raise typer.Exit(2)

    with cli_errors(verbose):
        program = parse_program_text(file.name, read_export_text(file))
        if json_output:
            echo_json([list(line.columns) for line in program.lines])
        else:
            for line in program.lines:
                typer.echo(" | ".join(line.columns))


@app.command()
def comment(
    device: Annotated[str, typer.Argument(help="Device (e.g. D100, X1A, T0)")],
    comments: CommentsOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Show the comment of a device."""
    setup_logging(verbose)

    with cli_errors(verbose):
        address = DeviceAddress.parse(device)
        store = build_store(comments, None, None)
        text = ProgramAnalyzer(store).get_comment(address.device_type, address.address)
        if json_output:
            echo_json({"device": address.display, "comment": text})
        else:
            typer.echo(text)


@app.command()
def blocks(
    device: Annotated[str, typer.Argument(help="Device to locate (e.g. M10)")],
    programs: ProgramsOption = None,
    context: Annotated[int, typer.Option("--context", "-C", help="Lines of context around each hit")] = 30,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Show program lines around every use of a device, one block per program file."""
    setup_logging(verbose)

    if context < 0:
        typer.echo(f"Error: Context must be zero or positive, got {context}", err=True)
        raise typer.Exit(2)

    with cli_errors(verbose):
        address = DeviceAddress.parse(device)
        store = build_store(None, programs, None)
        found = ProgramAnalyzer(store).get_program_blocks(address.device_type, address.address, context)
        if json_output:
            echo_json({"device": address.display, "blocks": found})
        else:
            typer.echo("\n\n".join(found))


@app.command()
def related(
    device: Annotated[str, typer.Argument(help="Device whose rungs are inspected")],
    programs: ProgramsOption = None,
    comments: CommentsOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """List devices that share a line with the given device, with their comments."""
    setup_logging(verbose)

    with cli_errors(verbose):
        address = DeviceAddress.parse(device)
        store = build_store(comments, programs, None)
        devices = ProgramAnalyzer(store).get_related_devices(address.device_type, address.address)
        rows = [{"device": d, "comment": store.try_get_comment(d) or ""} for d in devices]
        if json_output:
            echo_json({"device": address.display, "related": rows})
        else:
            for row in rows:
                typer.echo(f"{row['device']}\t{row['comment']}".rstrip())


@app.command()
def datatype(
    device: Annotated[str, typer.Argument(help="Word device (e.g. D100)")],
    programs: ProgramsOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Infer whether a device holds a word, double word or float from the instructions using it."""
    setup_logging(verbose)

    with cli_errors(verbose):
        address = DeviceAddress.parse(device)
        store = build_store(None, programs, None)
        data_type = ProgramAnalyzer(store).infer_device_data_type(address.device_type, address.address)
        if json_output:
            echo_json({"device": address.display, "dataType": data_type.value, "readLength": data_type.read_length})
        else:
            typer.echo(f"{address.display}: {data_type.value} ({data_type.read_length} word(s))")


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Question or keywords, e.g. 'conveyor motor fault'")],
    comments: CommentsOption = None,
    top: Annotated[int, typer.Option("--top", "-n", help=f"Maximum results (1-{MAX_RESULTS})")] = 5,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Search device comments; an explicit device in the query wins outright."""
    setup_logging(verbose)

    with cli_errors(verbose):
        store = build_store(comments, None, None)
        hits = CommentSearch(store).search(query, top_n=top)
        if json_output:
            echo_json([h.to_dict() for h in hits])
        else:
            for h in hits:
                typer.echo(f"{h.device}\t{h.score:.2f}\t{h.comment}")


@app.command()
def infer(
    query: Annotated[str, typer.Argument(help="Question mentioning devices or program names")],
    programs: ProgramsOption = None,
    multiple: Annotated[bool, typer.Option("--multiple", "-m", help="Return all candidates, including program devices")] = False,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Infer which devices a question is about."""
    setup_logging(verbose)

    with cli_errors(verbose):
        reasoner = DeviceReasoner()
        if multiple:
            store = build_store(None, programs, None)
            result = reasoner.infer_multiple(query, build_program_contexts(store, query))
        else:
            result = reasoner.infer_single(query)

        if json_output:
            echo_json(result.to_dict())
        elif not result.found:
            typer.echo(result.message or "")
        else:
            for c in result.devices:
                typer.echo(f"{c.priority}. {c.device} ({c.reason})")


@app.command()
def trace(
    comments: CommentsOption = None,
    programs: ProgramsOption = None,
    keyword: Annotated[
        Optional[list[str]],
        typer.Option("--keyword", "-k", help="Fault keyword (repeatable; replaces the defaults)"),
    ] = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Find L coils whose comment names a fault and the devices on their rungs."""
    setup_logging(verbose)

    with cli_errors(verbose):
        store = build_store(comments, programs, None)
        tracer = FaultTracer(store, keyword) if keyword else FaultTracer(store)
        report = tracer.trace_error_coils()
        if json_output:
            echo_json(report.to_dict())
        elif not report.candidates:
            typer.echo(report.message or "")
        else:
            for c in report.candidates:
                typer.echo(f"{c.device} {c.comment} [{c.program}]")
                typer.echo(f"  line:    {c.line}")
                typer.echo(f"  related: {', '.join(c.related_devices)}")


# ============================================================================
# Commands: function blocks
# ============================================================================

@app.command(name="fb-list")
def fb_list(
    fb_dir: FunctionBlocksOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """List the loaded function blocks."""
    setup_logging(verbose)

    with cli_errors(verbose):
        store = build_store(None, None, fb_dir)
        rows = list_function_blocks(store)
        if json_output:
            echo_json(rows)
        else:
            for row in rows:
                parts = [p for p, ok in (("label", row["hasLabel"]), ("program", row["hasProgram"])) if ok]
                typer.echo(f"{row['name']}\t{'+'.join(parts)}\t{row['updatedAt'] or ''}".rstrip())


@app.command(name="fb-show")
def fb_show(
    name: Annotated[str, typer.Argument(help="Function block name")],
    fb_dir: FunctionBlocksOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Show the labels and first program lines of a function block as JSON."""
    setup_logging(verbose)

    with cli_errors(verbose):
        store = build_store(None, None, fb_dir)
        analysis = analyze_function_block(store, name)
        if analysis is None:
            typer.echo(f"Error: Unknown function block: {name}", err=True)
            raise typer.Exit(2)
        echo_json(analysis)


@app.command(name="fb-search")
def fb_search(
    keyword: Annotated[str, typer.Argument(help="Text to look for in block names, labels and programs")],
    fb_dir: FunctionBlocksOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """Search function blocks by keyword (case-insensitive)."""
    setup_logging(verbose)

    with cli_errors(verbose):
        store = build_store(None, None, fb_dir)
        rows = search_function_blocks(store, keyword)
        if json_output:
            echo_json(rows)
        else:
            for row in rows:
                typer.echo(row["name"])


# ============================================================================
# Commands: live reads
# ============================================================================

async def _read_one(client: GatewayClient, request: DeviceReadRequest):
    async with client:
        return await client.read(request)


async def _read_batch(client: GatewayClient, request: BatchReadRequest):
    async with client:
        return await client.read_batch(request)


@app.command()
def read(
    device: Annotated[str, typer.Argument(help="Device to read (e.g. D100, D100:4, X1A)")],
    programs: ProgramsOption = None,
    gateway_url: GatewayUrlOption = DEFAULT_BASE_URL,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
    ip: IpOption = None,
    port: PortOption = None,
    plc_host: PlcHostOption = None,
    transport: TransportOption = None,
    data_type: Annotated[
        Optional[DeviceDataType],
        typer.Option("--type", case_sensitive=False, help="Override the inferred data type"),
    ] = None,
    signed: SignedOption = False,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Read a device through the gateway.

    With --program, the data type is inferred from the listing: a device used by
    32-bit instructions (DMOV, EMOV, ...) is read as two words and decoded as a
    signed 32-bit integer or float. Use --type to override.
    """
    setup_logging(verbose)

    with cli_errors(verbose):
        address = DeviceAddress.parse(device)
        analyzer = ProgramAnalyzer(build_store(None, programs, None))
        if data_type is None:
            data_type = (
                analyzer.infer_device_data_type(address.device_type, address.address)
                if address.device_type.supports_double_word
                else DeviceDataType.WORD
            )
            address = analyzer.resolve_read_address(address)
        elif address.length < data_type.read_length:
            address = address.with_length(data_type.read_length)

        request = DeviceReadRequest(
            spec=address.to_spec(),
            ip=ip,
            port=port,
            plc_host=plc_host,
            transport=transport,
            timeout=timeout,
        )
        result = asyncio.run(_read_one(GatewayClient(gateway_url, timeout=timeout), request))
        if not result.success:
            raise GatewayIOError(result.error or "read failed", device=result.device)

        decoded = decode_values(result.values, data_type, signed)
        if json_output:
            echo_json(
                {
                    "device": result.device,
                    "dataType": data_type.value,
                    "values": list(result.values),
                    "decoded": decoded,
                }
            )
        else:
            typer.echo(" ".join(format_decoded(v) for v in decoded))


@app.command(name="read-many")
def read_many(
    devices: Annotated[list[str], typer.Argument(help="Devices to read (space-separated)")],
    programs: ProgramsOption = None,
    gateway_url: GatewayUrlOption = DEFAULT_BASE_URL,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
    ip: IpOption = None,
    port: PortOption = None,
    plc_host: PlcHostOption = None,
    transport: TransportOption = None,
    partial: Annotated[bool, typer.Option("--partial", help="Exit 0 when at least one device was read")] = False,
    verbose: VerboseOption = False,
) -> None:
    """
    Read several devices in one batch request and print the results as JSON.

    Results keep the order given. By default any failed device exits with code 3;
    use --partial to accept partial results.
    """
    setup_logging(verbose)

    with cli_errors(verbose):
        analyzer = ProgramAnalyzer(build_store(None, programs, None))
        specs: list[str] = []
        for spec in devices:
            try:
                specs.append(analyzer.resolve_read_address(DeviceAddress.parse(spec)).to_spec())
            except InvalidDeviceError:
                # the client reports it as a failed result in place
                specs.append(spec)

        request = BatchReadRequest(
            specs=tuple(specs),
            ip=ip,
            port=port,
            plc_host=plc_host,
            transport=transport,
            timeout=timeout,
        )
        result = asyncio.run(_read_batch(GatewayClient(gateway_url, timeout=timeout), request))
        echo_json(result.to_dict())

        succeeded = sum(1 for r in result.results if r.success)
        if result.success or (partial and succeeded):
            return
        typer.echo(f"Error: {len(result.results) - succeeded} of {len(result.results)} reads failed", err=True)
        raise typer.Exit(3)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"pyplc-ladder {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """pyplc - analyze PLC ladder-program exports and read live device values."""
    pass


if __name__ == "__main__":
    app()
