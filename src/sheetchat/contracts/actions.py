"""Models for the propose → decide → execute mutation protocol."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sheetchat.contracts.cells import Scalar
from sheetchat.contracts.common import UnknownAction


class ActionKind(str, Enum):
    """Closed set of actions an agent may propose."""

    UPDATE_CELL = "update_cell"
    DELETE_ROW = "delete_row"
    ADD_ROW = "add_row"
    RENAME_THREAD = "rename_thread"
    DELETE_THREAD = "delete_thread"
    CLEAR_MESSAGES = "clear_messages"

    @classmethod
    def parse(cls, raw: "str | ActionKind") -> "ActionKind":
        """Resolve ``raw`` to a kind, accepting snake, kebab and camel spellings.

        Raises UnknownAction for anything outside the closed set.
        """
        if isinstance(raw, ActionKind):
            return raw
        key = str(raw).replace("_", "").replace("-", "").lower()
        kind = _KIND_ALIASES.get(key)
        if kind is None:
            valid = ", ".join(k.value for k in cls)
            raise UnknownAction(f"Unknown action: {raw!r}. Valid: {valid}")
        return kind

    @property
    def touches_workbook(self) -> bool:
        return self in (ActionKind.UPDATE_CELL, ActionKind.DELETE_ROW, ActionKind.ADD_ROW)


_KIND_ALIASES: dict[str, ActionKind] = {
    **{k.value.replace("_", ""): k for k in ActionKind},
    # names used by the chat tool layer
    "updateexcelcell": ActionKind.UPDATE_CELL,
    "deleteexcelrow": ActionKind.DELETE_ROW,
    "addexcelrow": ActionKind.ADD_ROW,
    "updatethreadtitle": ActionKind.RENAME_THREAD,
}


class DecisionStatus(str, Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class ActionParameters(BaseModel):
    """Parameters of a proposed action.

    Accepts both snake_case and the camelCase names emitted by the agent
    tool schema (``rowIndex``, ``rowData``, ``threadId``, ``newTitle``).
    Which fields were actually supplied is tracked through
    ``model_fields_set`` so an explicit ``value: null`` differs from a
    missing value.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sheet: str | None = None
    cell: str | None = None
    value: Scalar = None
    row_index: int | None = Field(default=None, alias="rowIndex")
    row_data: list[Scalar] | None = Field(default=None, alias="rowData")
    thread_id: int | None = Field(default=None, alias="threadId")
    new_title: str | None = Field(default=None, alias="newTitle")

    def supplied(self, name: str) -> bool:
        return name in self.model_fields_set


class ActionProposal(BaseModel):
    """An agent's request to perform an action, shown to the human as-is."""

    model_config = ConfigDict(frozen=True)

    proposal_id: str
    action_kind: ActionKind
    title: str
    description: str
    parameters: ActionParameters = Field(default_factory=ActionParameters)


class ActionDecision(BaseModel):
    """The human's binary answer to exactly one proposal."""

    model_config = ConfigDict(frozen=True)

    proposal_id: str
    status: DecisionStatus
    action_kind: ActionKind
    parameters: ActionParameters = Field(default_factory=ActionParameters)

    @property
    def confirmed(self) -> bool:
        return self.status is DecisionStatus.CONFIRMED


class ActionResult(BaseModel):
    """Outcome of executing (or cancelling) a decision."""

    success: bool
    message: str
    data: Any | None = None
