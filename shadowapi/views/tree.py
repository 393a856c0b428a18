"""
shadowapi/views/tree.py
Presentation model: a host-grouped tree of findings plus the export format.

Nodes are a tagged variant. Each TreeNode carries a NodeKind and exactly the
payload that kind implies, so views dispatch on the tag:

    ROOT     label only, children are HOST nodes
    HOST     host name, children are FINDING nodes
    FINDING  the Finding itself, no children
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from shadowapi.discovery.models import Finding

ROOT_LABEL = "API Target (Root)"


class NodeKind(str, Enum):
    ROOT = "root"
    HOST = "host"
    FINDING = "finding"


@dataclass
class TreeNode:
    kind: NodeKind
    label: str
    host: Optional[str] = None
    finding: Optional[Finding] = None
    children: List["TreeNode"] = field(default_factory=list)

    @classmethod
    def root(cls) -> "TreeNode":
        return cls(NodeKind.ROOT, ROOT_LABEL)

    @classmethod
    def for_host(cls, host: str) -> "TreeNode":
        return cls(NodeKind.HOST, host, host=host)

    @classmethod
    def for_finding(cls, finding: Finding) -> "TreeNode":
        return cls(NodeKind.FINDING, finding_label(finding), host=finding.host, finding=finding)

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


def finding_label(finding: Finding) -> str:
    """'[POST] /api/users [Shadow]'; the method prefix is omitted when unknown."""
    prefix = f"[{finding.method}] " if finding.method else ""
    suffix = " [Verified]" if finding.is_verified else " [Shadow]"
    return f"{prefix}{finding.path}{suffix}"


def build_tree(snapshot: Iterable[Finding]) -> TreeNode:
    root = TreeNode.root()
    hosts = {}
    for finding in snapshot:
        node = hosts.get(finding.host)
        if node is None:
            node = hosts[finding.host] = TreeNode.for_host(finding.host)
            root.children.append(node)
        node.children.append(TreeNode.for_finding(finding))
    return root


def render_tree(root: TreeNode) -> str:
    lines = []
    for node in root.walk():
        if node.kind is NodeKind.ROOT:
            lines.append(node.label)
        elif node.kind is NodeKind.HOST:
            lines.append(f"  {node.label}")
        else:
            lines.append(f"    {node.label}")
    return "\n".join(lines)


def export_paths(snapshot: Iterable[Finding]) -> str:
    """All known paths, one per line, in snapshot order."""
    return "\n".join(f.path for f in snapshot)
