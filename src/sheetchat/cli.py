"""Typer CLI application — top-level commands and subcommand groups."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Callable, Optional

import orjson
import typer

import sheetchat
from sheetchat.contracts.actions import ActionProposal
from sheetchat.contracts.common import ResponseEnvelope, Target
from sheetchat.engine.dispatcher import (
    action_envelope,
    dump_model,
    envelope_for_exception,
    error_envelope,
    exit_code_for,
    print_response,
    success_envelope,
)
from sheetchat.io.fileops import read_text_safe
from sheetchat.observe.events import EventEmitter, Timer

# ---------------------------------------------------------------------------
# App & subcommand groups
# ---------------------------------------------------------------------------

_MAIN_HELP = """\
Read Excel workbooks for a chat assistant and apply human-confirmed edits.

**Reads** never change the file: `sheet ls`, `sheet read`, `cell get`,
`cell formula`, `range get`.

**Edits** go through a two-step protocol and are never applied directly:

1. `sheetchat action propose --kind update_cell --title "Fix price" --description "..." --params '{"sheet":"Sales","cell":"B2","value":42}' --out p.json`
2. `sheetchat action run -f data.xlsx --proposal p.json`  — shows the proposal and asks for confirmation

**Every command** returns a JSON `ResponseEnvelope`:
`{"ok": bool, "command": "...", "result": {...}, "errors": [...], "warnings": [...], "metrics": {"duration_ms": N}}`

**Exit codes:** 0=success, 10=validation, 40=conflict, 50=io, 90=internal
"""

_SHEET_EPILOG = """\
**Examples:**

`sheetchat sheet ls -f data.xlsx`  — list sheets with dimensions and used range

`sheetchat sheet read -f data.xlsx -s Users`  — every cell of the used range
"""

_CELL_EPILOG = """\
**Examples:**

`sheetchat cell get -f data.xlsx --ref "Sales!D2"`

`sheetchat cell formula -f data.xlsx --ref "Sales!D2"`

**Ref format:** always include the sheet name — `SheetName!CellRef`.
"""

_RANGE_EPILOG = """\
**Examples:**

`sheetchat range get -f data.xlsx --ref "Users!A1:C3"`

Corners may be given in any order; `C3:A1` reads the same block.
"""

_MENTION_EPILOG = """\
**Examples:**

`sheetchat mention parse --text "compare @Sales!A1:B3 with @Users!C2"`

`sheetchat mention generate --sheet Sales --from a1 --to b3`  — `@Sales!A1:B3`
"""

_ACTION_EPILOG = """\
**Action kinds:** update_cell, delete_row, add_row, rename_thread, delete_thread, clear_messages

**Parameters** (JSON): `sheet`, `cell`, `value`, `rowIndex`, `rowData`, `threadId`, `newTitle`

`sheetchat action run` executes only after an explicit yes; `--no` records a rejection.
"""

app = typer.Typer(
    name="sheetchat",
    help=_MAIN_HELP,
    no_args_is_help=True,
    rich_markup_mode="markdown",
)

sheet_app = typer.Typer(
    name="sheet", help="Sheet listing and whole-sheet reads.",
    epilog=_SHEET_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
cell_app = typer.Typer(
    name="cell", help="Read a single cell's value or formula.",
    epilog=_CELL_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
range_app = typer.Typer(
    name="range", help="Read rectangular cell ranges.",
    epilog=_RANGE_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
mention_app = typer.Typer(
    name="mention", help="Parse, split and generate @Sheet!A1 mentions.",
    epilog=_MENTION_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)
action_app = typer.Typer(
    name="action", help="Propose actions and run them after confirmation.",
    epilog=_ACTION_EPILOG,
    no_args_is_help=True, rich_markup_mode="markdown",
)

app.add_typer(sheet_app)
app.add_typer(cell_app)
app.add_typer(range_app)
app.add_typer(mention_app)
app.add_typer(action_app)

_state: dict[str, Any] = {"events": False}


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(sheetchat.__version__)
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def root(
    version: Annotated[
        bool, typer.Option("--version", "-V", help="Print version and exit.", is_eager=True)
    ] = False,
    events: Annotated[
        bool, typer.Option("--events", help="Emit NDJSON lifecycle events on stderr.")
    ] = False,
) -> None:
    if version:
        _version_callback(True)
    _state["events"] = events


# Type aliases for common options
FilePath = Annotated[str, typer.Option("--file", "-f", help="Path to .xlsx workbook file")]
RefOpt = Annotated[str, typer.Option("--ref", help="Reference as SheetName!Cell or SheetName!A1:C3")]
TextOpt = Annotated[str, typer.Option("--text", help="Chat message text")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _emitter() -> EventEmitter:
    return EventEmitter(enabled=_state["events"])


def _load_store(file: str):
    from sheetchat.engine.store import WorkbookStore
    return WorkbookStore(file, emitter=_emitter())


def _emit(envelope: ResponseEnvelope, code: int | None = None):
    print_response(envelope)
    raise typer.Exit(code if code is not None else exit_code_for(envelope))


def _run(command: str, target: Target, fn: Callable[[], Any]) -> None:
    """Run ``fn`` and emit its result, or the error it raised, as an envelope."""
    with Timer() as t:
        try:
            result = fn()
        except Exception as e:
            env = envelope_for_exception(command, e, target=target)
        else:
            env = success_envelope(command, dump_model(result), target=target)
    env.metrics.duration_ms = t.elapsed_ms
    _emit(env)


def _split_ref(command: str, file: str | None, ref: str) -> tuple[str, str]:
    from sheetchat.engine.refs import split_sheet_ref

    try:
        return split_sheet_ref(ref)
    except Exception as e:
        _emit(envelope_for_exception(command, e, target=Target(file=file, ref=ref)))
        raise  # unreachable: _emit always exits


def _load_proposal(path: str) -> ActionProposal:
    """Load a proposal file written by ``action propose`` (raw or as an envelope)."""
    try:
        data = orjson.loads(read_text_safe(path))
    except Exception as e:
        raise ValueError(f"Cannot parse proposal: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Proposal file must contain a JSON object.")
    if {"ok", "command", "result"}.issubset(data):
        # Accept the envelope printed by `action propose` as well.
        data = data.get("result")
        if not isinstance(data, dict):
            raise ValueError("Proposal envelope has no proposal in 'result'.")

    try:
        return ActionProposal.model_validate(data)
    except Exception as e:
        raise ValueError(f"Cannot parse proposal: {e}") from e


def _describe(proposal: ActionProposal) -> str:
    params = dump_model(proposal.parameters, exclude_unset=True)
    lines = [
        f"{proposal.title}",
        f"  {proposal.description}",
        f"  action: {proposal.action_kind.value}",
    ]
    lines.extend(f"  {key}: {value!r}" for key, value in params.items())
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# sheetchat version
# ---------------------------------------------------------------------------
@app.command()
def version():
    """Print the sheetchat version.

    Example: `sheetchat version`
    """
    env = success_envelope("version", {"version": sheetchat.__version__})
    _emit(env)


# ---------------------------------------------------------------------------
# sheetchat sheet ls / read
# ---------------------------------------------------------------------------
@sheet_app.command("ls")
def sheet_ls(file: FilePath):
    """List all sheets in a workbook with name, index, and dimensions.

    Example: `sheetchat sheet ls -f data.xlsx`
    """
    from sheetchat.adapters.openpyxl_engine import list_sheets

    _run("sheet.ls", Target(file=file), lambda: list_sheets(_load_store(file)))


@sheet_app.command("read")
def sheet_read(
    file: FilePath,
    sheet: Annotated[str, typer.Option("--sheet", "-s", help="Sheet name (as shown by 'sheetchat sheet ls')")],
):
    """Read every cell in a sheet's used range.

    Example: `sheetchat sheet read -f data.xlsx -s Users`
    """
    from sheetchat.adapters.openpyxl_engine import read_sheet

    _run("sheet.read", Target(file=file, sheet=sheet), lambda: read_sheet(_load_store(file), sheet))


# ---------------------------------------------------------------------------
# sheetchat cell get / formula
# ---------------------------------------------------------------------------
@cell_app.command("get")
def cell_get_cmd(file: FilePath, ref: RefOpt):
    """Read a single cell's value, type, and formula.

    Formula cells return the value last calculated by Excel, with the
    formula text alongside.

    Example: `sheetchat cell get -f data.xlsx --ref "Sales!D2"`
    """
    from sheetchat.adapters.openpyxl_engine import read_cell

    sheet, cell = _split_ref("cell.get", file, ref)
    _run("cell.get", Target(file=file, sheet=sheet, ref=ref), lambda: read_cell(_load_store(file), sheet, cell))


@cell_app.command("formula")
def cell_formula_cmd(file: FilePath, ref: RefOpt):
    """Read the formula text of a cell (without the leading `=`).

    Example: `sheetchat cell formula -f data.xlsx --ref "Sales!D2"`
    """
    from sheetchat.adapters.openpyxl_engine import read_formula

    sheet, cell = _split_ref("cell.formula", file, ref)
    _run("cell.formula", Target(file=file, sheet=sheet, ref=ref), lambda: read_formula(_load_store(file), sheet, cell))


# ---------------------------------------------------------------------------
# sheetchat range get
# ---------------------------------------------------------------------------
@range_app.command("get")
def range_get_cmd(file: FilePath, ref: RefOpt):
    """Read a rectangular block of cells.

    Example: `sheetchat range get -f data.xlsx --ref "Users!A1:C3"`
    """
    from sheetchat.adapters.openpyxl_engine import read_range

    sheet, local = _split_ref("range.get", file, ref)
    start, _, end = local.partition(":")
    _run(
        "range.get",
        Target(file=file, sheet=sheet, ref=ref),
        lambda: read_range(_load_store(file), sheet, start, end or start),
    )


# ---------------------------------------------------------------------------
# sheetchat mention parse / segment / generate
# ---------------------------------------------------------------------------
@mention_app.command("parse")
def mention_parse_cmd(text: TextOpt):
    """List every `@Sheet!A1` / `@Sheet!A1:B3` mention in the text with its offsets."""
    from sheetchat.text.mentions import parse_all

    _run("mention.parse", Target(), lambda: parse_all(text))


@mention_app.command("segment")
def mention_segment_cmd(text: TextOpt):
    """Split text into plain and mention segments, in order."""
    from sheetchat.text.mentions import segment

    _run("mention.segment", Target(), lambda: segment(text))


@mention_app.command("generate")
def mention_generate_cmd(
    sheet: Annotated[str, typer.Option("--sheet", "-s", help="Sheet name")],
    from_ref: Annotated[str, typer.Option("--from", help="First cell, e.g. A1")],
    to_ref: Annotated[Optional[str], typer.Option("--to", help="Last cell for a range mention")] = None,
):
    """Build the mention text for a cell or range.

    Example: `sheetchat mention generate --sheet Sales --from a1 --to b3`
    """
    from sheetchat.text.mentions import generate

    _run("mention.generate", Target(sheet=sheet), lambda: {"mention": generate(sheet, from_ref, to_ref)})


# ---------------------------------------------------------------------------
# sheetchat action propose / run
# ---------------------------------------------------------------------------
@action_app.command("propose")
def action_propose_cmd(
    kind: Annotated[str, typer.Option("--kind", "-k", help="Action kind, e.g. update_cell")],
    title: Annotated[str, typer.Option("--title", help="Short title shown to the user")],
    description: Annotated[str, typer.Option("--description", help="What the action will do")],
    params: Annotated[str, typer.Option("--params", help="Parameters as a JSON object")] = "{}",
    out: Annotated[Optional[str], typer.Option("--out", help="Write the raw proposal JSON to this file")] = None,
):
    """Create a proposal. Nothing is changed until it is confirmed with `action run`.

    Example: `sheetchat action propose --kind delete_row --title "Remove Bob" --description "Delete row 3" --params '{"sheet":"Users","rowIndex":2}' --out p.json`
    """
    from sheetchat.engine.actions import propose

    with Timer() as t:
        try:
            parameters = orjson.loads(params)
            if not isinstance(parameters, dict):
                raise ValueError("--params must be a JSON object")
            proposal = propose(kind, title, description, parameters)
        except ValueError as e:
            _emit(error_envelope("action.propose", "ERR_USAGE", str(e)))
            return
        except Exception as e:
            _emit(envelope_for_exception("action.propose", e))
            return
        _emitter().emit("action.proposed", {
            "proposal_id": proposal.proposal_id,
            "action_kind": proposal.action_kind.value,
        })
        body = dump_model(proposal, exclude_unset=True)
        if out:
            Path(out).write_bytes(orjson.dumps(body, option=orjson.OPT_INDENT_2))

    env = success_envelope("action.propose", body, duration_ms=t.elapsed_ms)
    _emit(env)


@action_app.command("run")
def action_run_cmd(
    file: FilePath,
    proposal_path: Annotated[str, typer.Option("--proposal", "-p", help="Proposal file written by 'action propose --out'")],
    answer: Annotated[
        Optional[bool],
        typer.Option("--yes/--no", help="Answer without prompting (confirm or reject)"),
    ] = None,
):
    """Show a proposal, ask for confirmation, and execute it only on yes.

    Example: `sheetchat action run -f data.xlsx --proposal p.json`

    Example: `sheetchat action run -f data.xlsx --proposal p.json --yes`

    A proposal is applied at most once per workbook; running it again
    exits 40 with `ERR_ALREADY_EXECUTED`.
    """
    from sheetchat.engine.actions import ActionExecutor, decide
    from sheetchat.io.fileops import ExecutedLedger

    target = Target(file=file)
    try:
        proposal = _load_proposal(proposal_path)
    except ValueError as e:
        _emit(error_envelope("action.run", "ERR_USAGE", str(e), target=target))
        return

    ledger = ExecutedLedger(file)
    if proposal.proposal_id in ledger:
        _emit(error_envelope(
            "action.run", "ERR_ALREADY_EXECUTED",
            f"Action {proposal.proposal_id} was already executed", target=target,
        ))
        return

    if answer is None:
        typer.echo(_describe(proposal), err=True)
        answer = typer.confirm("Apply this change?", default=False, err=True)

    emitter = _emitter()
    decision = decide(proposal, "confirmed" if answer else "rejected")
    emitter.emit("action.decided", {"proposal_id": decision.proposal_id, "status": decision.status.value})

    with Timer() as t:
        try:
            store = _load_store(file) if answer and proposal.action_kind.touches_workbook else None
            executor = ActionExecutor(store, emitter=emitter, ledger=ledger)
            result = executor.execute(decision)
        except Exception as e:
            env = envelope_for_exception("action.run", e, target=target)
        else:
            env = action_envelope("action.run", result, target=target)
    env.metrics.duration_ms = t.elapsed_ms
    _emit(env)


# ---------------------------------------------------------------------------
# sheetchat serve --stdio
# ---------------------------------------------------------------------------
@app.command("serve")
def serve_cmd(
    stdio: Annotated[bool, typer.Option("--stdio", help="Use stdin/stdout for JSON request/response")] = True,
    file: Annotated[Optional[str], typer.Option("--file", "-f", help="Default workbook for requests without 'file'")] = None,
):
    """Start the JSON-lines server for the chat layer.

    Each line is a JSON object: `{"id": "1", "command": "cell.get", "args": {"ref": "Sales!B2"}}`

    Example: `sheetchat serve --stdio -f data.xlsx`
    """
    from sheetchat.server.stdio import StdioServer
    server = StdioServer(file, emitter=_emitter())
    server.run()


# ---------------------------------------------------------------------------
# Entrypoint (for `python -m sheetchat`)
# ---------------------------------------------------------------------------
def main() -> None:
    try:
        app()
    except SystemExit:
        raise
    except Exception as exc:
        # Machine consumers never see a raw traceback.
        env = error_envelope("unknown", "ERR_INTERNAL", str(exc))
        print_response(env)
        raise SystemExit(90) from exc


if __name__ == "__main__":
    main()
