from .console import ConsoleObserver
from .tree import NodeKind, TreeNode, build_tree, export_paths, finding_label, render_tree

__all__ = [
    "ConsoleObserver",
    "NodeKind",
    "TreeNode",
    "build_tree",
    "export_paths",
    "finding_label",
    "render_tree",
]
