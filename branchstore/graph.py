"""Node/link projection of a branch for the network visualization."""

from typing import List, Literal

from pydantic import BaseModel, Field

from .models import Branch

ROLE_LABELS = {"user": "You", "assistant": "AI", "system": "System"}


class Node(BaseModel):
    id: str
    label: str
    type: Literal["message", "choice"] = "message"
    content: str
    current: bool = False


class Link(BaseModel):
    source: str
    target: str
    label: str = ""


class Graph(BaseModel):
    nodes: List[Node] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)


def build_graph(branch: Branch) -> Graph:
    """One node per message, linked in display order. The last message is current."""
    msgs = branch.messages
    nodes = [
        Node(
            id=m.id,
            label=ROLE_LABELS[m.role],
            content=m.content,
            current=(i == len(msgs) - 1),
        )
        for i, m in enumerate(msgs)
    ]
    links = [Link(source=prev.id, target=m.id) for prev, m in zip(msgs, msgs[1:])]
    return Graph(nodes=nodes, links=links)
