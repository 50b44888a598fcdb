#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
selectorscan — function selector & event topic table generator.

What it does:
  • Collect ABIs, either from a Foundry project (`forge compile` once, then
    `forge inspect <file.sol>:<Name> abi` per source file) or offline from
    ABI JSON files (array form, build artifacts, Etherscan-style).
  • Build canonical signatures: name(type1,type2,...), types verbatim.
  • Hash them with Keccak-256:
      - functions -> 4-byte selector (0x + 8 hex)
      - events    -> 32-byte topic  (0x + 64 hex)
  • Output, grouped per contract in discovery order:
      - <out>/events/events.csv        contractName,event,topic
      - <out>/selectors/selectors.csv  contractName,function,selector
      - optional per-contract .txt listings (--txt)
      - summary on stdout (--pretty)

Examples:
  $ selectorscan forge ./src
  $ selectorscan forge ./src reports --txt --pretty
  $ selectorscan abi ./abis/*.json --out reports
"""

import csv
import glob
import io
import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple

import click
from eth_utils import keccak

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = "function_selectors"
UNKNOWN_NAME = "unknown"
ANONYMOUS_SUFFIX = " [anonymous]"

Row = Tuple[str, str, str]

EVENTS_HEADER: Row = ("contractName", "event", "topic")
FUNCTIONS_HEADER: Row = ("contractName", "function", "selector")

# ------------------------------ Errors ------------------------------

class SelectorScanError(click.ClickException):
    """Base error; the CLI prints it as `Error: ...` and exits with status 1."""


class MalformedInterfaceError(SelectorScanError):
    """ABI JSON could not be decoded into interface entries."""


class ExternalToolError(SelectorScanError):
    """forge could not be run or exited with a non-zero status."""


class OutputWriteError(SelectorScanError):
    """A report file or its folder could not be created or written."""

# ------------------------------ Models ------------------------------

class EntryKind(str, Enum):
    FUNCTION = "function"
    EVENT = "event"
    OTHER = "other"    # constructor, fallback, receive, error, ...

    @classmethod
    def from_abi_type(cls, typ: str) -> "EntryKind":
        if typ == "function":
            return cls.FUNCTION
        if typ == "event":
            return cls.EVENT
        return cls.OTHER


@dataclass(frozen=True)
class InterfaceInput:
    param_type: str        # verbatim, e.g. "uint256[]" or "(address,uint256)"


@dataclass(frozen=True)
class InterfaceEntry:
    kind: EntryKind
    name: Optional[str] = None
    inputs: Tuple[InterfaceInput, ...] = ()
    anonymous: bool = False    # events only

    @property
    def input_types(self) -> List[str]:
        return [i.param_type for i in self.inputs]

    @property
    def signature(self) -> str:
        return canonical_signature(self.name, self.input_types)


@dataclass(frozen=True)
class DerivedIdentifier:
    signature: str         # display text, may carry the anonymous suffix
    identifier: str        # 0x-prefixed selector or topic


@dataclass
class ContractReport:
    name: str
    events: List[DerivedIdentifier] = field(default_factory=list)
    functions: List[DerivedIdentifier] = field(default_factory=list)


class ReportTable:
    """Append-only rows: header, then per contract a divider and its data rows."""

    def __init__(self, header: Row):
        self.rows: List[Row] = [header]

    @property
    def header(self) -> Row:
        return self.rows[0]

    def add_contract(self, name: str, identifiers: Iterable[DerivedIdentifier]) -> None:
        self.rows.append((name, "", ""))
        for d in identifiers:
            self.rows.append(("", d.signature, d.identifier))

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class ReportTables:
    events: ReportTable = field(default_factory=lambda: ReportTable(EVENTS_HEADER))
    functions: ReportTable = field(default_factory=lambda: ReportTable(FUNCTIONS_HEADER))
    contracts: List[str] = field(default_factory=list)

    def add(self, report: ContractReport) -> None:
        # Both tables get a divider, even when the contract has no rows of that kind.
        self.events.add_contract(report.name, report.events)
        self.functions.add_contract(report.name, report.functions)
        self.contracts.append(report.name)

# ------------------------------ Parsing ------------------------------

def _parse_entry(index: int, item: Any) -> InterfaceEntry:
    if not isinstance(item, dict):
        raise MalformedInterfaceError(f"ABI entry #{index} is not an object")

    typ = item.get("type")
    if not isinstance(typ, str):
        raise MalformedInterfaceError(f"ABI entry #{index}: 'type' must be a string, got {typ!r}")

    name = item.get("name")
    if name is not None and not isinstance(name, str):
        raise MalformedInterfaceError(f"ABI entry #{index}: 'name' must be a string, got {name!r}")

    raw_inputs = item.get("inputs")
    if raw_inputs is None:
        raw_inputs = []
    if not isinstance(raw_inputs, list):
        raise MalformedInterfaceError(f"ABI entry #{index}: 'inputs' must be an array")

    inputs: List[InterfaceInput] = []
    for j, inp in enumerate(raw_inputs):
        param_type = inp.get("type") if isinstance(inp, dict) else None
        if not isinstance(param_type, str):
            raise MalformedInterfaceError(f"ABI entry #{index}: input #{j} has no string 'type'")
        inputs.append(InterfaceInput(param_type))

    anonymous = item.get("anonymous", False)
    if not isinstance(anonymous, bool):
        raise MalformedInterfaceError(f"ABI entry #{index}: 'anonymous' must be a boolean")

    return InterfaceEntry(
        kind=EntryKind.from_abi_type(typ),
        name=name,
        inputs=tuple(inputs),
        anonymous=anonymous,
    )


def parse_interface(raw: Any) -> Tuple[InterfaceEntry, ...]:
    """
    Parse an ABI into interface entries.

    `raw` may be JSON text (str/bytes) or an already decoded value. The
    top-level value must be an array; unknown fields are ignored.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise MalformedInterfaceError(f"ABI is not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise MalformedInterfaceError(f"ABI must be a JSON array, got {type(raw).__name__}")
    return tuple(_parse_entry(i, item) for i, item in enumerate(raw))


def load_abi(path: str) -> Tuple[InterfaceEntry, ...]:
    """
    Accept:
      - Plain array ABI
      - Build artifact (Foundry/Hardhat) with an "abi" array
      - Etherscan-style JSON with "result" being a stringified ABI
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise SelectorScanError(f"Cannot read ABI file {path}: {e}") from e
    try:
        data = json.loads(text)
    except ValueError as e:
        raise MalformedInterfaceError(f"{path}: not valid JSON: {e}") from e

    if isinstance(data, dict):
        if isinstance(data.get("abi"), list):
            data = data["abi"]
        elif isinstance(data.get("result"), str):
            data = data["result"]
        else:
            raise MalformedInterfaceError(f"{path}: unrecognized ABI format")

    try:
        return parse_interface(data)
    except MalformedInterfaceError as e:
        raise MalformedInterfaceError(f"{path}: {e.message}") from e

# ------------------------------ Signatures & digests ------------------------------

def canonical_signature(name: Optional[str], input_types: Sequence[str]) -> str:
    if name is None:
        name = UNKNOWN_NAME
    return f"{name}({','.join(input_types)})"


def keccak_digest(signature: str) -> bytes:
    # Original Keccak-256 padding (not NIST SHA3-256).
    return keccak(text=signature)


def function_selector(signature: str) -> str:
    return "0x" + keccak_digest(signature)[:4].hex()


def event_topic(signature: str) -> str:
    return "0x" + keccak_digest(signature).hex()


def derive_identifier(entry: InterfaceEntry) -> DerivedIdentifier:
    sig = entry.signature
    if entry.kind is EntryKind.FUNCTION:
        return DerivedIdentifier(sig, function_selector(sig))
    if entry.kind is EntryKind.EVENT:
        # Suffix is display-only; the topic is over the bare signature.
        display = sig + ANONYMOUS_SUFFIX if entry.anonymous else sig
        return DerivedIdentifier(display, event_topic(sig))
    raise ValueError(f"no identifier for ABI entry kind {entry.kind.value!r}")

# ------------------------------ Aggregation ------------------------------

def build_contract_report(name: str, entries: Iterable[InterfaceEntry]) -> ContractReport:
    report = ContractReport(name=name)
    for entry in entries:
        if entry.kind is EntryKind.FUNCTION:
            report.functions.append(derive_identifier(entry))
        elif entry.kind is EntryKind.EVENT:
            report.events.append(derive_identifier(entry))
    return report


def aggregate(reports: Iterable[ContractReport]) -> ReportTables:
    tables = ReportTables()
    for report in reports:
        tables.add(report)
    return tables

# ------------------------------ Sources ------------------------------

def discover_sources(root: Path) -> List[Path]:
    """Every *.sol under root, sorted; the contract name is the file stem."""
    root = Path(root)
    if not root.is_dir():
        raise SelectorScanError(f"Contracts folder not found: {root}")
    return sorted(p for p in root.rglob("*.sol") if p.is_file())


def expand_paths(paths: Iterable[str]) -> List[str]:
    expanded: List[str] = []
    for p in paths:
        g = sorted(glob.glob(p))
        if g:
            expanded.extend(g)
        elif os.path.isfile(p):
            expanded.append(p)
    return expanded


class ForgeRunner:
    """Thin wrapper over the `forge` CLI; every failure is an ExternalToolError."""

    def __init__(self, binary: str = "forge", project_root: Path = Path("."), json_output: bool = True):
        self.binary = binary
        self.project_root = Path(project_root)
        self.json_output = json_output

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        cmd = [self.binary] + args
        logger.debug(f"Running {' '.join(cmd)} in {self.project_root}")
        try:
            return subprocess.run(cmd, cwd=self.project_root, capture_output=True,
                                  encoding="utf-8", errors="replace")
        except OSError as e:
            raise ExternalToolError(f"Could not run '{self.binary}': {e}") from e

    def compile(self) -> None:
        result = self._run(["compile"])
        if result.returncode != 0:
            raise ExternalToolError(f"Compilation failed: {result.stderr.strip()}")

    def inspect_abi(self, source: Path, contract: str) -> str:
        args = ["inspect", f"{Path(source).resolve()}:{contract}", "abi"]
        if self.json_output:
            args.append("--json")
        result = self._run(args)
        if result.returncode != 0:
            raise ExternalToolError(f"'forge inspect' failed for {source}: {result.stderr.strip()}")
        return result.stdout


def scan_forge(sources: Iterable[Path], runner: ForgeRunner, skip_malformed: bool = False) -> Iterator[ContractReport]:
    """
    Yield one report per source, in order.

    A failed `forge inspect` skips that source. An undecodable ABI aborts
    the scan unless skip_malformed is set.
    """
    for source in sources:
        contract = source.stem
        click.echo(f"Checking contract '{contract}' from file '{source}'")
        try:
            abi_json = runner.inspect_abi(source, contract)
        except ExternalToolError as e:
            logger.warning(f"Skipping {source}: {e.message}")
            continue

        try:
            entries = parse_interface(abi_json)
        except MalformedInterfaceError as e:
            if not skip_malformed:
                raise MalformedInterfaceError(f"{source}: {e.message}") from e
            logger.warning(f"Skipping {source}: {e.message}")
            continue

        yield build_contract_report(contract, entries)


def scan_abi_files(paths: Iterable[str], skip_malformed: bool = False) -> Iterator[ContractReport]:
    for path in paths:
        contract = os.path.splitext(os.path.basename(path))[0]
        click.echo(f"Reading ABI for '{contract}' from '{path}'")
        try:
            entries = load_abi(path)
        except MalformedInterfaceError as e:
            if not skip_malformed:
                raise
            logger.warning(f"Skipping {e.message}")
            continue

        yield build_contract_report(contract, entries)

# ------------------------------ Output ------------------------------

def _csv_line(row: Row) -> str:
    # csv only quotes on characters of its lineterminator; "\r\n" makes both
    # "\r" and "\n" trigger quoting, then the record ends with a bare "\n".
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\r\n").writerow(row)
    return buf.getvalue()[:-2] + "\n"


def write_table(table: ReportTable, path: Path) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            for row in table:
                f.write(_csv_line(row))
    except OSError as e:
        raise OutputWriteError(f"Could not write {path}: {e}") from e
    return path


def write_reports(tables: ReportTables, out_dir: Path) -> Tuple[Path, Path]:
    out_dir = Path(out_dir)
    events_csv = write_table(tables.events, out_dir / "events" / "events.csv")
    selectors_csv = write_table(tables.functions, out_dir / "selectors" / "selectors.csv")
    return events_csv, selectors_csv


def write_listing(report: ContractReport, out_dir: Path) -> None:
    """Per-contract `sig -> id` text files next to the CSVs."""
    out_dir = Path(out_dir)
    for sub, items in (("selectors", report.functions), ("events", report.events)):
        path = out_dir / sub / f"{report.name}.txt"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                for d in items:
                    f.write(f"{d.signature} -> {d.identifier}\n")
        except OSError as e:
            raise OutputWriteError(f"Could not write {path}: {e}") from e


def emit_reports(reports: Iterable[ContractReport], out_dir: Path, txt: bool, pretty: bool) -> ReportTables:
    reports = list(reports)
    tables = aggregate(reports)

    if txt:
        for report in reports:
            write_listing(report, out_dir)

    if pretty:
        for report in reports:
            click.echo(f"== {report.name} ==")
            click.echo(f"  functions: {len(report.functions)}")
            for d in report.functions:
                click.echo(f"    {d.identifier}  {d.signature}")
            click.echo(f"  events: {len(report.events)}")
            for d in report.events:
                click.echo(f"    {d.identifier}  {d.signature}")
            click.echo("")
        click.echo(f"{len(tables.contracts)} contract(s): {', '.join(tables.contracts) or '-'}")

    events_csv, selectors_csv = write_reports(tables, out_dir)
    click.echo(f"CSV files generated:\n  Events -> {events_csv}\n  Selectors -> {selectors_csv}")
    return tables

# ------------------------------ CLI ------------------------------

def output_options(f):
    f = click.option("--skip-malformed", is_flag=True,
                     help="Skip artifacts whose ABI cannot be decoded instead of aborting.")(f)
    f = click.option("--pretty", is_flag=True, help="Human-readable summary to stdout.")(f)
    f = click.option("--txt", is_flag=True, help="Also write per-contract .txt listings.")(f)
    return f


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to stderr.")
def cli(verbose):
    """selectorscan — function selector & event topic table generator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


@cli.command("forge")
@click.argument("contracts_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("output_dir", required=False, default=DEFAULT_OUTPUT_DIR,
                type=click.Path(file_okay=False, path_type=Path))
@click.option("--forge", "forge_bin", envvar="FORGE_BIN", default="forge", show_default=True,
              help="forge executable (env: FORGE_BIN).")
@click.option("--project-root", type=click.Path(exists=True, file_okay=False, path_type=Path),
              default=".", show_default=True, help="Foundry project root (where forge runs).")
@click.option("--no-compile", is_flag=True, help="Skip `forge compile` (artifacts already built).")
@click.option("--legacy-inspect", is_flag=True, help="Omit --json on `forge inspect` (forge < 1.0).")
@output_options
def forge_cmd(contracts_dir, output_dir, forge_bin, project_root, no_compile, legacy_inspect,
              txt, pretty, skip_malformed):
    """Compile a Foundry project and tabulate every contract under CONTRACTS_DIR."""
    runner = ForgeRunner(forge_bin, project_root, json_output=not legacy_inspect)

    if not no_compile:
        click.echo("Compiling contracts with 'forge compile'...")
        runner.compile()
        click.echo("Contracts successfully compiled.")

    sources = discover_sources(contracts_dir)
    if not sources:
        logger.warning(f"No .sol files found under {contracts_dir}")

    emit_reports(scan_forge(sources, runner, skip_malformed), output_dir, txt, pretty)


@cli.command("abi")
@click.argument("paths", nargs=-1)
@click.option("--out", "output_dir", type=click.Path(file_okay=False, path_type=Path),
              default=DEFAULT_OUTPUT_DIR, show_default=True, help="Output folder.")
@output_options
def abi_cmd(paths, output_dir, txt, pretty, skip_malformed):
    """Tabulate ABI JSON files (or globs like ./abis/*.json); contract name = file stem."""
    expanded = expand_paths(paths)
    if not expanded:
        raise click.ClickException("No ABI files found. Pass paths or globs like ./abis/*.json")

    emit_reports(scan_abi_files(expanded, skip_malformed), output_dir, txt, pretty)


if __name__ == "__main__":
    cli()
