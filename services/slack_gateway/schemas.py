# services/slack_gateway/schemas.py
"""Pydantic DTO-models used by the *Slack gateway* HTTP layer.

Kept apart from `main.py` so the routes do not depend on the domain models
directly and the OpenAPI description stays in one place.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SlackAckResponse(BaseModel):
    """Immediate reply to a slash command (must arrive within 3 seconds)."""

    model_config = ConfigDict(
        json_schema_extra={
            "description": "Synchronous acknowledgment; the result follows as a separate message.",
        }
    )

    text: str = Field(...)
    response_type: Literal["ephemeral", "in_channel"] = Field("ephemeral")


class HealthResponse(BaseModel):
    status: str = Field("ok")
