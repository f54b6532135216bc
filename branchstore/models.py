"""Data models for the branch store.

Field names are snake_case in Python and camelCase in the persisted JSON
document (``parentId``, ``currentBranchId``, ``lastUpdated``).
"""

import time
import uuid
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

Role = Literal["user", "assistant", "system"]
MessageType = Literal["text", "image"]


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return uuid.uuid4().hex


def now_ms() -> int:
    """Return current time in epoch milliseconds."""
    return int(time.time() * 1000)


class Message(BaseModel):
    """A single chat message. ``content`` holds an image reference when ``type`` is image."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    role: Role
    content: str
    type: MessageType = "text"
    timestamp: int = Field(default_factory=now_ms)
    model: Optional[str] = None
    parent_id: Optional[str] = Field(default=None, alias="parentId")


class Branch(BaseModel):
    """One timeline of the conversation. Owns its messages."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    messages: List[Message] = Field(default_factory=list)
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    timestamp: int
    title: str


class ConversationState(BaseModel):
    """The persisted root: every branch plus the current-branch pointer."""

    model_config = ConfigDict(populate_by_name=True)

    branches: Dict[str, Branch]
    current_branch_id: str = Field(alias="currentBranchId")
    last_updated: int = Field(alias="lastUpdated")

    @model_validator(mode="after")
    def _check_invariants(self) -> "ConversationState":
        if not self.branches:
            raise ValueError("state has no branches")
        if self.current_branch_id not in self.branches:
            raise ValueError(f"current branch {self.current_branch_id!r} does not exist")
        for key, branch in self.branches.items():
            if key != branch.id:
                raise ValueError(f"branch key {key!r} does not match id {branch.id!r}")
        return self

    @property
    def current_branch(self) -> Branch:
        return self.branches[self.current_branch_id]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
