"""stdio server mode — JSON line-delimited protocol over stdin/stdout.

Each request line is ``{"id": ..., "command": ..., "args": {...}}``; each
response line is a ResponseEnvelope with the request ``id`` added.
Mutations are only reachable through ``action.propose`` →
``action.decide`` → ``action.execute``.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, TextIO

import orjson

from sheetchat.adapters.openpyxl_engine import list_sheets, read_cell, read_formula, read_range, read_sheet
from sheetchat.contracts.actions import ActionDecision, ActionProposal
from sheetchat.contracts.common import ResponseEnvelope, Target
from sheetchat.engine.actions import ActionExecutor, decide, propose
from sheetchat.engine.dispatcher import (
    action_envelope,
    dump_model,
    envelope_for_exception,
    error_envelope,
    success_envelope,
)
from sheetchat.engine.refs import split_sheet_ref
from sheetchat.engine.store import WorkbookStore
from sheetchat.io.fileops import ExecutedLedger
from sheetchat.observe.events import EventEmitter, Timer
from sheetchat.text import mentions

WORKBOOK_COMMANDS = frozenset({
    "sheet.ls", "sheet.read", "cell.get", "cell.formula", "range.get", "action.execute",
})


def _response(req_id: Any, env: ResponseEnvelope) -> dict[str, Any]:
    return {"id": req_id, **env.model_dump(mode="json", by_alias=True)}


class StdioServer:
    """Line-oriented server bound to one default workbook.

    Proposals and decisions live for the lifetime of the server; a decision
    is recorded once and its action runs at most once.  A proposal belongs
    to the workbook it was made against and only executes there.
    """

    def __init__(self, file: str | None = None, *, emitter: EventEmitter | None = None) -> None:
        self.file = file
        self.emitter = emitter or EventEmitter()
        self._stores: dict[str, WorkbookStore] = {}
        self._executors: dict[str, ActionExecutor] = {}
        self._proposals: dict[str, ActionProposal] = {}
        self._decisions: dict[str, ActionDecision] = {}
        self._proposal_files: dict[str, str | None] = {}

    def _resolve_file(self, args: dict[str, Any]) -> str:
        file = args.get("file") or self.file
        if not file:
            raise ValueError("Missing 'file' in args")
        return str(Path(file).resolve())

    def _get_store(self, file: str) -> WorkbookStore:
        if file not in self._stores:
            self._stores[file] = WorkbookStore(file, emitter=self.emitter)
        return self._stores[file]

    def _get_executor(self, file: str) -> ActionExecutor:
        if file not in self._executors:
            self._executors[file] = ActionExecutor(
                self._get_store(file), emitter=self.emitter, ledger=ExecutedLedger(file),
            )
        return self._executors[file]

    # -- command handlers --------------------------------------------------

    def _workbook_command(self, command: str, args: dict[str, Any], target: Target) -> ResponseEnvelope:
        file = self._resolve_file(args)
        target.file = file
        store = self._get_store(file)

        if command == "sheet.ls":
            return success_envelope(command, dump_model(list_sheets(store)), target=target)

        if command == "sheet.read":
            sheet = args.get("sheet", "")
            target.sheet = sheet
            return success_envelope(command, dump_model(read_sheet(store, sheet)), target=target)

        if command in ("cell.get", "cell.formula", "range.get"):
            ref = args.get("ref", "")
            target.ref = ref
            sheet, local = split_sheet_ref(ref)
            target.sheet = sheet
            if command == "cell.get":
                result = read_cell(store, sheet, local)
            elif command == "cell.formula":
                result = read_formula(store, sheet, local)
            else:
                start, _, end = local.partition(":")
                result = read_range(store, sheet, start, end or start)
            return success_envelope(command, dump_model(result), target=target)

        # action.execute
        proposal_id = args.get("proposal_id", "")
        decision = self._decisions.get(proposal_id)
        if decision is None:
            code = "ERR_NOT_CONFIRMED" if proposal_id in self._proposals else "ERR_PROPOSAL_NOT_FOUND"
            return error_envelope(command, code, f"No decision recorded for proposal {proposal_id!r}", target=target)
        bound = self._proposal_files.get(proposal_id)
        if bound is None:
            self._proposal_files[proposal_id] = file
        elif bound != file:
            return error_envelope(
                command, "ERR_WORKBOOK_MISMATCH",
                f"Proposal {proposal_id} was made for {bound}, not {file}",
                target=target, details={"proposal_file": bound},
            )
        return action_envelope(command, self._get_executor(file).execute(decision), target=target)

    def _action_command(self, command: str, args: dict[str, Any], target: Target) -> ResponseEnvelope:
        if command == "action.propose":
            proposal = propose(
                args.get("kind", ""),
                args.get("title", ""),
                args.get("description", ""),
                args.get("parameters") or {},
            )
            self._proposals[proposal.proposal_id] = proposal
            if args.get("file") or self.file:
                target.file = self._resolve_file(args)
            self._proposal_files[proposal.proposal_id] = target.file
            self.emitter.emit("action.proposed", {
                "proposal_id": proposal.proposal_id,
                "action_kind": proposal.action_kind.value,
            })
            return success_envelope(command, dump_model(proposal, exclude_unset=True), target=target)

        # action.decide
        proposal_id = args.get("proposal_id", "")
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            return error_envelope(command, "ERR_PROPOSAL_NOT_FOUND", f"Unknown proposal: {proposal_id!r}", target=target)
        if proposal_id in self._decisions:
            return error_envelope(command, "ERR_ALREADY_DECIDED", f"Proposal {proposal_id} was already decided", target=target)
        decision = decide(proposal, args.get("status", ""))
        self._decisions[proposal_id] = decision
        self.emitter.emit("action.decided", {"proposal_id": proposal_id, "status": decision.status.value})
        return success_envelope(command, dump_model(decision, exclude_unset=True), target=target)

    def _mention_command(self, command: str, args: dict[str, Any], target: Target) -> ResponseEnvelope:
        if command == "mention.parse":
            return success_envelope(command, dump_model(mentions.parse_all(args.get("text", ""))), target=target)
        if command == "mention.segment":
            return success_envelope(command, dump_model(mentions.segment(args.get("text", ""))), target=target)
        text = mentions.generate(args.get("sheet", ""), args.get("from", ""), args.get("to"))
        return success_envelope(command, {"mention": text}, target=target)

    def handle_request(self, request: dict[str, Any]) -> dict[str, Any]:
        req_id = request.get("id", "")
        command = request.get("command", "")
        args = request.get("args") or {}
        target = Target()

        with Timer() as t:
            try:
                if command in WORKBOOK_COMMANDS:
                    env = self._workbook_command(command, args, target)
                elif command in ("action.propose", "action.decide"):
                    env = self._action_command(command, args, target)
                elif command in ("mention.parse", "mention.segment", "mention.generate"):
                    env = self._mention_command(command, args, target)
                else:
                    env = error_envelope(command, "ERR_USAGE", f"Unknown command: {command}", target=target)
            except ValueError as e:
                # includes pydantic validation errors on malformed args
                env = error_envelope(command, "ERR_USAGE", str(e), target=target)
            except Exception as e:
                env = envelope_for_exception(command, e, target=target)
        env.metrics.duration_ms = t.elapsed_ms
        return _response(req_id, env)

    def run(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Main server loop: read JSON lines from stdin, write responses to stdout."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        for line in stdin:
            line = line.strip()
            if not line:
                continue
            try:
                request = orjson.loads(line)
            except orjson.JSONDecodeError as e:
                response = _response(None, error_envelope("", "ERR_USAGE", f"Invalid JSON: {e}"))
            else:
                if isinstance(request, dict):
                    response = self.handle_request(request)
                else:
                    response = _response(None, error_envelope("", "ERR_USAGE", "Request must be a JSON object"))
            stdout.write(orjson.dumps(response).decode() + "\n")
            stdout.flush()
