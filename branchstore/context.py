"""Context building for model calls."""

from typing import Dict, List, Optional

from .models import Branch


def build_context(branch: Branch, system_prompt: Optional[str] = None) -> List[Dict[str, str]]:
    """
    Build the role/content list for a provider call.

    A pinned system prompt comes first, followed by the branch's text
    messages in order. Image messages and empty messages are skipped.
    """
    out: List[Dict[str, str]] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    out.extend(
        {"role": m.role, "content": m.content}
        for m in branch.messages
        if m.type == "text" and m.content
    )
    return out
