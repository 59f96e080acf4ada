"""Typed view of the i3 window tree.

``i3-msg -t get_tree`` returns an untyped recursive document. It is parsed
into :class:`I3Node`, folded once to find occupied workspaces, and discarded.
"""

from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict


class I3Node(BaseModel):
    """A node of the i3 tree: a container, a workspace or a window."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    num: Optional[int] = None
    window: Optional[int] = None
    nodes: List["I3Node"] = []
    floating_nodes: List["I3Node"] = []

    @property
    def is_workspace(self) -> bool:
        return self.type == "workspace" and self.num is not None and self.num > 0

    @property
    def is_window(self) -> bool:
        return self.window is not None

    def children(self) -> List["I3Node"]:
        return [*self.nodes, *self.floating_nodes]


def occupied_workspaces(node: I3Node, workspace: Optional[int] = None) -> Set[int]:
    """Return numbers of workspaces holding at least one window."""
    if node.is_workspace:
        workspace = node.num

    occupied: Set[int] = set()
    if node.is_window and workspace is not None:
        occupied.add(workspace)

    for child in node.children():
        occupied |= occupied_workspaces(child, workspace)
    return occupied
