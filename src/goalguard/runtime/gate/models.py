"""Gate wire models — the hook event in, the verdict out."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from goalguard.runtime.policy.models import ActionKind

EVENT_KINDS: dict[str, ActionKind] = {
    "beforeShellExecution": ActionKind.SHELL,
    "beforeMCPExecution": ActionKind.MCP,
    "beforeReadFile": ActionKind.READ,
    "beforeTabFileRead": ActionKind.READ,
    "afterFileEdit": ActionKind.WRITE,
    "afterTabFileEdit": ActionKind.WRITE,
}

EVENT_NAME_KEYS = ("hook_event_name", "hookEventName", "event", "name")


class GateResponse(BaseModel):
    """``{continue, permission, userMessage?, agentMessage?}``."""

    model_config = ConfigDict(populate_by_name=True)

    continue_: bool = Field(default=True, alias="continue")
    permission: Literal["allow", "deny"] = "allow"
    user_message: str | None = Field(default=None, alias="userMessage")
    agent_message: str | None = Field(default=None, alias="agentMessage")

    @classmethod
    def allow(cls, agent_message: str | None = None, user_message: str | None = None) -> GateResponse:
        return cls(
            continue_=True,
            permission="allow",
            agent_message=agent_message or None,
            user_message=user_message or None,
        )

    @classmethod
    def deny(cls, user_message: str, agent_message: str | None = None) -> GateResponse:
        return cls(
            continue_=False,
            permission="deny",
            user_message=user_message,
            agent_message=agent_message or user_message,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
