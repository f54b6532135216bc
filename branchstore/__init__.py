"""Branch store for branchchat.

This package models conversation history as a forkable tree of branches and
persists it through a pluggable key-value adapter.
"""

from .adapters import FileAdapter, MemoryAdapter, NullAdapter, PersistenceAdapter
from .context import build_context
from .errors import BranchNotFound, BranchStoreError, InvalidOperation
from .export import export_branch_markdown
from .graph import Graph, Link, Node, build_graph
from .models import Branch, ConversationState, Message
from .store import WELCOME_MESSAGE, BranchStore
