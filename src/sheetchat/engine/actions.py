"""Two-phase mutation protocol: propose → decide → execute.

An agent builds an ``ActionProposal``; the human answers it with an
``ActionDecision``; only a confirmed decision reaches ``ActionExecutor``,
which runs it at most once using the decision's own parameters.
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

from sheetchat.adapters.openpyxl_engine import add_row, delete_row, write_cell
from sheetchat.contracts.actions import (
    ActionDecision,
    ActionKind,
    ActionParameters,
    ActionProposal,
    ActionResult,
    DecisionStatus,
)
from sheetchat.contracts.common import MissingParameters
from sheetchat.engine.store import WorkbookStore
from sheetchat.io.fileops import ExecutedLedger
from sheetchat.observe.events import EventEmitter

REQUIRED_PARAMETERS: dict[ActionKind, tuple[str, ...]] = {
    ActionKind.UPDATE_CELL: ("sheet", "cell", "value"),
    ActionKind.DELETE_ROW: ("sheet", "row_index"),
    ActionKind.ADD_ROW: ("sheet", "row_data"),
    ActionKind.RENAME_THREAD: ("thread_id", "new_title"),
    ActionKind.DELETE_THREAD: ("thread_id",),
    ActionKind.CLEAR_MESSAGES: ("thread_id",),
}


class ConversationStore(Protocol):
    """Storage of chat threads, owned by the conversation layer."""

    def rename_thread(self, thread_id: int, new_title: str) -> None: ...

    def delete_thread(self, thread_id: int) -> None: ...

    def clear_messages(self, thread_id: int) -> int:
        """Delete all messages of a thread; returns how many were removed."""
        ...


def propose(
    kind: str | ActionKind,
    title: str,
    description: str,
    parameters: ActionParameters | dict[str, Any] | None = None,
) -> ActionProposal:
    """Build a proposal. Unknown kinds raise UnknownAction here, not at execution."""
    action_kind = ActionKind.parse(kind)
    if not isinstance(parameters, ActionParameters):
        parameters = ActionParameters.model_validate(parameters or {})
    return ActionProposal(
        proposal_id=uuid.uuid4().hex,
        action_kind=action_kind,
        title=title,
        description=description,
        parameters=parameters,
    )


def decide(proposal: ActionProposal, outcome: str | DecisionStatus) -> ActionDecision:
    """The human's answer, bound to exactly the proposal's kind and parameters."""
    return ActionDecision(
        proposal_id=proposal.proposal_id,
        status=DecisionStatus(outcome),
        action_kind=proposal.action_kind,
        parameters=proposal.parameters,
    )


def missing_parameters(kind: ActionKind, params: ActionParameters) -> list[str]:
    missing: list[str] = []
    for name in REQUIRED_PARAMETERS[kind]:
        if name == "value":
            # an explicit null clears the cell, so only absence counts
            if not params.supplied("value"):
                missing.append(name)
            continue
        value = getattr(params, name)
        if value is None or value == "":
            missing.append(name)
    return missing


def cancelled_result(decision: ActionDecision) -> ActionResult:
    return ActionResult(
        success=False,
        message="Action cancelled by the user",
        data={"status": "cancelled", "action_kind": decision.action_kind.value},
    )


def already_executed_result(decision: ActionDecision) -> ActionResult:
    return ActionResult(
        success=False,
        message=f"Action {decision.proposal_id} was already executed",
        data={"status": "already_executed"},
    )


class ActionExecutor:
    """Runs confirmed decisions against the workbook or the conversation store.

    Each decision identity runs at most once; a repeat returns a failed
    result without touching anything.  Failures of the underlying operation
    become ``ActionResult(success=False)`` and are never retried.

    The in-memory record only covers this executor.  Callers that rebuild
    the executor per request (the CLI) pass an ``ExecutedLedger`` so the
    record survives between processes.
    """

    def __init__(
        self,
        store: WorkbookStore | None = None,
        conversations: ConversationStore | None = None,
        *,
        emitter: EventEmitter | None = None,
        ledger: ExecutedLedger | None = None,
    ) -> None:
        self.store = store
        self.conversations = conversations
        self.emitter = emitter or EventEmitter()
        self.ledger = ledger
        self._executed: set[str] = set()
        self._awaiting: dict[str, ActionDecision] = {}

    def was_executed(self, proposal_id: str) -> bool:
        if proposal_id in self._executed:
            return True
        return self.ledger is not None and proposal_id in self.ledger

    def register(self, decision: ActionDecision) -> None:
        """Remember a confirmed decision so ``execute_confirmed_action`` can find it."""
        if decision.confirmed and decision.proposal_id not in self._executed:
            self._awaiting[decision.proposal_id] = decision

    def execute(self, decision: ActionDecision) -> ActionResult:
        if not decision.confirmed:
            self._awaiting.pop(decision.proposal_id, None)
            return cancelled_result(decision)
        if decision.proposal_id in self._executed:
            return already_executed_result(decision)

        missing = missing_parameters(decision.action_kind, decision.parameters)
        if missing:
            raise MissingParameters(
                f"{decision.action_kind.value} requires: {', '.join(missing)}",
                details={"missing": missing},
            )

        if self.ledger is not None and not self.ledger.claim(decision.proposal_id):
            self._executed.add(decision.proposal_id)
            return already_executed_result(decision)
        self._executed.add(decision.proposal_id)
        self._awaiting.pop(decision.proposal_id, None)
        try:
            result = self._dispatch(decision.action_kind, decision.parameters)
        except Exception as e:
            result = ActionResult(
                success=False,
                message=f"{decision.action_kind.value} failed: {e}",
                data={"status": "failed", "code": getattr(e, "code", "ERR_INTERNAL")},
            )
        self.emitter.emit("action.executed", {
            "proposal_id": decision.proposal_id,
            "action_kind": decision.action_kind.value,
            "success": result.success,
        })
        return result

    def execute_confirmed_action(
        self,
        kind: str | ActionKind,
        parameters: ActionParameters | dict[str, Any],
    ) -> ActionResult:
        """Execute the registered confirmed decision matching ``kind`` and ``parameters``.

        Nothing runs unless a human confirmed exactly this action.
        """
        action_kind = ActionKind.parse(kind)
        if not isinstance(parameters, ActionParameters):
            parameters = ActionParameters.model_validate(parameters)
        for decision in list(self._awaiting.values()):
            if decision.action_kind is action_kind and decision.parameters == parameters:
                return self.execute(decision)
        return ActionResult(
            success=False,
            message=f"No confirmed {action_kind.value} action matches these parameters",
            data={"status": "not_confirmed"},
        )

    def _require_store(self) -> WorkbookStore:
        if self.store is None:
            raise RuntimeError("No workbook configured")
        return self.store

    def _require_conversations(self) -> ConversationStore:
        if self.conversations is None:
            raise RuntimeError("No conversation store configured")
        return self.conversations

    def _dispatch(self, kind: ActionKind, p: ActionParameters) -> ActionResult:
        if kind is ActionKind.UPDATE_CELL:
            change = write_cell(self._require_store(), p.sheet, p.cell, p.value)
            return ActionResult(
                success=True,
                message=f"{change.target} updated. New value: {change.after}",
                data=change.model_dump(mode="json"),
            )
        if kind is ActionKind.DELETE_ROW:
            change = delete_row(self._require_store(), p.sheet, p.row_index)
            return ActionResult(
                success=True,
                message=f"Row {p.row_index} deleted from {p.sheet}",
                data=change.model_dump(mode="json"),
            )
        if kind is ActionKind.ADD_ROW:
            change = add_row(self._require_store(), p.sheet, p.row_index, p.row_data)
            return ActionResult(
                success=True,
                message=f"Row added to {p.sheet} at index {change.after['row_index']}",
                data=change.model_dump(mode="json"),
            )
        if kind is ActionKind.RENAME_THREAD:
            self._require_conversations().rename_thread(p.thread_id, p.new_title)
            return ActionResult(success=True, message=f'Thread #{p.thread_id} renamed to "{p.new_title}"')
        if kind is ActionKind.DELETE_THREAD:
            self._require_conversations().delete_thread(p.thread_id)
            return ActionResult(success=True, message=f"Thread #{p.thread_id} deleted")
        if kind is ActionKind.CLEAR_MESSAGES:
            count = self._require_conversations().clear_messages(p.thread_id)
            return ActionResult(
                success=True,
                message=f"All messages in thread #{p.thread_id} deleted",
                data={"deleted_count": count},
            )
        raise AssertionError(f"unhandled action kind: {kind}")
