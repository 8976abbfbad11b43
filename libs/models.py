# libs/models.py
"""Domain models shared by the gateway, the parser and the outbound clients.

Levels
------
1. **InboundCommand** – what Slack posted to `/slack/commands`, built only
   after the request signature has been verified.
2. **ParsedInput** – item name + amount extracted from the free text.
3. **PurchaseRecord** – the row that lands in the ledger spreadsheet.

The outbound clients never raise to the orchestrator; their outcome is carried
by :class:`UserLookup` and :class:`AppendResult` instead.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "AppendResult",
    "CommandOutcome",
    "InboundCommand",
    "ParsedInput",
    "PurchaseRecord",
    "UNKNOWN_USER",
    "UserLookup",
]

UNKNOWN_USER = "Unknown User"


class CommandOutcome(str, Enum):
    """Terminal state of one slash-command invocation."""

    USAGE_HINT = "usage_hint"  # empty text, usage shown in the ack
    PARSE_FAILED = "parse_failed"
    APPEND_FAILED = "append_failed"
    REPORTED = "reported"  # row appended, confirmation posted
    ERRORED = "errored"  # unexpected fault caught at the handler boundary


class InboundCommand(BaseModel):
    """Slash-command payload (form fields + signature headers)."""

    raw_text: str = ""
    user_id: str = Field(..., min_length=1)
    channel_id: str = Field(..., min_length=1)
    command_name: str = ""
    signature: str = ""
    timestamp: int = 0
    user_name: Optional[str] = None
    response_url: Optional[str] = None

    @classmethod
    def from_form(
        cls, form: dict[str, str], *, signature: str, timestamp: int
    ) -> "InboundCommand":
        return cls(
            raw_text=form.get("text", ""),
            user_id=form.get("user_id", ""),
            channel_id=form.get("channel_id", ""),
            command_name=form.get("command", ""),
            user_name=form.get("user_name") or None,
            response_url=form.get("response_url") or None,
            signature=signature,
            timestamp=timestamp,
        )

    @property
    def text(self) -> str:
        return self.raw_text.strip()


class ParsedInput(BaseModel):
    item: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)

    @field_validator("item")
    def _strip_item(cls, v: str) -> str:  # noqa: N805
        v = v.strip()
        if not v:
            raise ValueError("item must not be blank")
        return v


class PurchaseRecord(BaseModel):
    """One ledger row: date, purchaser, item, amount, note."""

    date: str
    purchaser: str
    item: str
    amount: float = Field(..., ge=0)
    note: str = ""

    def as_row(self) -> list[Any]:
        return [self.date, self.purchaser, self.item, self.amount, self.note]


class UserLookup(BaseModel):
    """Display name lookup result; `resolved=False` means a placeholder."""

    name: str
    resolved: bool = True
    error: Optional[str] = None

    @classmethod
    def placeholder(cls, error: str) -> "UserLookup":
        return cls(name=UNKNOWN_USER, resolved=False, error=error)


class AppendResult(BaseModel):
    ok: bool
    updated_range: Optional[str] = None
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok
