"""Markdown export of a branch.

Produces a note with YAML frontmatter followed by one section per message:

    ---
    branch_id: ...
    title: ...
    ---

    ## M1 (Assistant)
    text...
"""

from datetime import datetime
from typing import Any, Dict

import yaml

from .models import Branch, Message


def _ms_to_iso(ms: int) -> str:
    """Return an epoch-ms timestamp in local ISO format."""
    return datetime.fromtimestamp(ms / 1000).astimezone().isoformat(timespec="seconds")


def _render_message(n: int, message: Message) -> str:
    header = f"## M{n} ({message.role.capitalize()})\n"
    if message.type == "image":
        body = f"![image]({message.content})"
    else:
        body = message.content.strip()
    return header + body + "\n\n"


def export_branch_markdown(branch: Branch) -> str:
    """Render a branch as Markdown with YAML frontmatter."""
    meta: Dict[str, Any] = {
        "branch_id": branch.id,
        "title": branch.title,
        "parent_branch_id": branch.parent_id or "",
        "updated_at": _ms_to_iso(branch.timestamp),
        "message_count": len(branch.messages),
    }
    front = "---\n" + yaml.safe_dump(meta, sort_keys=False).strip() + "\n---\n\n"
    body = "".join(_render_message(i, m) for i, m in enumerate(branch.messages, start=1))
    return front + body.strip() + "\n"
