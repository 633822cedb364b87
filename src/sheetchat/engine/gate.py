"""Confirmation gate — suspends an action until the human decision arrives.

The conversation layer opens a proposal and awaits it; the UI side submits
the decision, which wakes the waiting coroutine.  There is no polling and
no timeout here; wrap ``wait_for_decision`` in ``asyncio.wait_for`` if the
caller needs one.

Usage (agent side)::

    decision = await gate.wait_for_decision(proposal)
    result = executor.execute(decision)

Usage (UI side)::

    gate.submit(decide(proposal, "confirmed"))
"""

from __future__ import annotations

import asyncio

from sheetchat.contracts.actions import ActionDecision, ActionProposal, ActionResult, DecisionStatus
from sheetchat.engine.actions import ActionExecutor, decide
from sheetchat.observe.events import EventEmitter


class _PendingEntry:
    """Internal tracking for a single open proposal."""

    __slots__ = ("proposal", "event", "decision")

    def __init__(self, proposal: ActionProposal) -> None:
        self.proposal = proposal
        self.event = asyncio.Event()
        self.decision: ActionDecision | None = None


class ConfirmationGate:
    """Pairs each open proposal with exactly one human decision.

    Single-event-loop use only; not thread-safe.
    """

    def __init__(self, *, emitter: EventEmitter | None = None) -> None:
        self._pending: dict[str, _PendingEntry] = {}
        self.emitter = emitter or EventEmitter()

    def open(self, proposal: ActionProposal) -> None:
        """Start tracking a proposal so a decision can be submitted for it."""
        if proposal.proposal_id not in self._pending:
            self._pending[proposal.proposal_id] = _PendingEntry(proposal)
            self.emitter.emit("action.proposed", {
                "proposal_id": proposal.proposal_id,
                "action_kind": proposal.action_kind.value,
            })

    async def wait_for_decision(self, proposal: ActionProposal | str) -> ActionDecision:
        """Suspend until a decision for ``proposal`` is submitted.

        Passing the proposal itself opens it first; a bare id must already be open.
        """
        if isinstance(proposal, ActionProposal):
            self.open(proposal)
            proposal_id = proposal.proposal_id
        else:
            proposal_id = proposal
        entry = self._pending.get(proposal_id)
        if entry is None:
            raise KeyError(f"No open proposal: {proposal_id}")
        try:
            await entry.event.wait()
        finally:
            self._pending.pop(proposal_id, None)
        if entry.decision is None:
            raise RuntimeError(f"Proposal {proposal_id} was released without a decision")
        return entry.decision

    def submit(self, decision: ActionDecision) -> bool:
        """Deliver a decision.

        Returns False when no matching open proposal exists, when it was
        already decided, or when the decision's kind or parameters differ
        from what the human was shown.
        """
        entry = self._pending.get(decision.proposal_id)
        if entry is None or entry.decision is not None:
            return False
        if (
            decision.action_kind is not entry.proposal.action_kind
            or decision.parameters != entry.proposal.parameters
        ):
            return False
        entry.decision = decision
        entry.event.set()
        self.emitter.emit("action.decided", {
            "proposal_id": decision.proposal_id,
            "status": decision.status.value,
        })
        return True

    def answer(self, proposal_id: str, outcome: str | DecisionStatus) -> bool:
        """Build the decision for an open proposal from a bare yes/no outcome and submit it."""
        entry = self._pending.get(proposal_id)
        if entry is None:
            return False
        return self.submit(decide(entry.proposal, outcome))

    def get_pending(self) -> list[ActionProposal]:
        return [e.proposal for e in self._pending.values() if e.decision is None]

    @property
    def pending_count(self) -> int:
        return len(self.get_pending())


async def confirm_and_execute(
    gate: ConfirmationGate,
    executor: ActionExecutor,
    proposal: ActionProposal,
) -> ActionResult:
    """Open ``proposal``, wait for the human, and execute only if confirmed."""
    decision = await gate.wait_for_decision(proposal)
    return executor.execute(decision)
