"""Branch store for branchchat.

The store is the sole authority over conversation branches. Every operation
loads the persisted state, mutates it, and writes it back before returning.
It assumes a single logical writer; callers sharing one store across threads
must serialize their calls.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from .adapters import PersistenceAdapter
from .errors import BranchNotFound, InvalidOperation
from .models import Branch, ConversationState, Message, new_id, now_ms

logger = logging.getLogger("branchchat.store")

WELCOME_MESSAGE = "Welcome to the Backrooms. What do you see around you?"
INITIAL_TITLE = "Initial Conversation"
TITLE_PREVIEW_CHARS = 30

MessageLike = Union[Message, Mapping[str, Any]]


class BranchStore:
    """Forkable, persisted conversation tree."""

    def __init__(
        self,
        adapter: PersistenceAdapter,
        namespace: str = "branchchat",
        welcome_message: str = WELCOME_MESSAGE,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = new_id,
    ):
        self.adapter = adapter
        self.state_key = f"{namespace}_conversations"
        self.current_key = f"{namespace}_current_branch"
        self.welcome_message = welcome_message
        self._clock = clock
        self._new_id = id_factory
        # Last written state; only consulted when the adapter is unavailable
        self._memory: Optional[ConversationState] = None

    # ----------------------------
    # Persistence
    # ----------------------------
    def _read_state(self) -> Optional[ConversationState]:
        try:
            raw = self.adapter.load(self.state_key)
        except OSError:
            logger.warning("Failed to read conversation state", exc_info=True)
            return None
        except ValueError as e:
            # Undecodable bytes
            logger.warning("Discarding corrupt conversation state: %s", e)
            return None
        if raw is None:
            return None
        try:
            return ConversationState.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("Discarding corrupt conversation state: %s", e)
            return None

    def _write_state(self, state: ConversationState) -> None:
        self._memory = state.model_copy(deep=True)
        try:
            self.adapter.save(self.state_key, state.to_json())
            self.adapter.save(self.current_key, state.current_branch_id)
        except OSError:
            logger.error("Failed to save conversation state", exc_info=True)

    def _initial_state(self) -> ConversationState:
        now = self._clock()
        branch = Branch(
            id=self._new_id(),
            messages=[
                Message(
                    id=self._new_id(),
                    role="assistant",
                    content=self.welcome_message,
                    type="text",
                    timestamp=now,
                )
            ],
            timestamp=now,
            title=INITIAL_TITLE,
        )
        return ConversationState(
            branches={branch.id: branch},
            current_branch_id=branch.id,
            last_updated=now,
        )

    def ensure_initialized(self) -> ConversationState:
        """Return the current state, creating and persisting the welcome state if none exists."""
        state = self._read_state()
        if state is not None:
            return state
        if not self.adapter.available and self._memory is not None:
            return self._memory.model_copy(deep=True)

        state = self._initial_state()
        logger.info("Initialized conversation state with branch %s", state.current_branch_id)
        self._write_state(state)
        return state

    # ----------------------------
    # Reads
    # ----------------------------
    def get_current_branch(self) -> Branch:
        return self.ensure_initialized().current_branch

    def get_branch(self, branch_id: str) -> Branch:
        state = self.ensure_initialized()
        if branch_id not in state.branches:
            raise BranchNotFound(branch_id)
        return state.branches[branch_id]

    def get_all_branches(self) -> List[Branch]:
        """All branches, most recently touched first."""
        state = self.ensure_initialized()
        return sorted(state.branches.values(), key=lambda b: b.timestamp, reverse=True)

    # ----------------------------
    # Mutations
    # ----------------------------
    def save_messages(self, messages: Iterable[MessageLike], branch_id: Optional[str] = None) -> None:
        """Replace the messages of ``branch_id``, or of the current branch when omitted.

        Never changes the current-branch pointer.
        """
        state = self.ensure_initialized()
        if branch_id is None:
            branch_id = state.current_branch_id
        elif branch_id not in state.branches:
            raise BranchNotFound(branch_id)
        now = self._clock()
        branch = state.branches[branch_id]
        branch.messages = _own_messages(messages)
        branch.timestamp = now
        state.last_updated = now
        self._write_state(state)

    def create_branch(self, fork_message_id: str, messages: Iterable[MessageLike]) -> str:
        """Fork: add a branch holding ``messages`` and make it current. Returns the new id."""
        state = self.ensure_initialized()
        now = self._clock()
        owned = _own_messages(messages)

        fork_message = next((m for m in owned if m.id == fork_message_id), None)
        if fork_message is not None:
            title = f"Branch from: {fork_message.content[:TITLE_PREVIEW_CHARS]}..."
        else:
            title = f"Branch at {datetime.fromtimestamp(now / 1000).strftime('%Y-%m-%d %H:%M:%S')}"

        branch = Branch(
            id=self._new_id(),
            messages=owned,
            parent_id=state.current_branch_id,
            timestamp=now,
            title=title,
        )
        state.branches[branch.id] = branch
        state.current_branch_id = branch.id
        state.last_updated = now
        self._write_state(state)

        logger.info("Created branch %s from %s at message %s", branch.id, branch.parent_id, fork_message_id)
        return branch.id

    def switch_branch(self, branch_id: str) -> Branch:
        state = self.ensure_initialized()
        if branch_id not in state.branches:
            raise BranchNotFound(branch_id)

        state.current_branch_id = branch_id
        state.last_updated = self._clock()
        self._write_state(state)
        return state.branches[branch_id]

    def delete_branch(self, branch_id: str) -> None:
        """Remove a branch. Children keep their (now dangling) ``parent_id``."""
        state = self.ensure_initialized()
        if branch_id not in state.branches:
            raise BranchNotFound(branch_id)
        if len(state.branches) == 1:
            raise InvalidOperation("Cannot delete the last branch")

        del state.branches[branch_id]
        if state.current_branch_id == branch_id:
            state.current_branch_id = next(iter(state.branches))
        state.last_updated = self._clock()
        self._write_state(state)

        logger.info("Deleted branch %s; current branch is %s", branch_id, state.current_branch_id)

    remove_branch = delete_branch

    def clear_all_conversations(self) -> None:
        """Erase all persisted state. The next read recreates the welcome state."""
        self._memory = None
        try:
            self.adapter.remove(self.state_key)
            self.adapter.remove(self.current_key)
        except OSError:
            logger.error("Failed to clear conversation state", exc_info=True)
        logger.info("Cleared all conversations")


def _own_messages(messages: Iterable[MessageLike]) -> List[Message]:
    """Copy messages so the branch never aliases caller-owned objects."""
    out: List[Message] = []
    for m in messages:
        if isinstance(m, Message):
            out.append(m.model_copy(deep=True))
        else:
            out.append(Message.model_validate(m))
    return out
