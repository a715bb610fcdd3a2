# =============================================================================
# assessment_core/data/assembler.py
# Joins flat per-table rows into the nested hospital tree (and back)
# =============================================================================
"""
Tree assembly works on rows that are already in local (camelCase) shape.

Children are bucketed by their parent id once per table, so assembly is
linear in the number of rows. Rows whose parent id matches nothing are
simply never reached from a hospital and drop out of the result.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .schema import KINDS, ROOT_KIND, children_of, child_collections, get_kind

Node = Dict[str, Any]
ChildIndex = Dict[str, Dict[Any, List[Node]]]


def index_by_parent(rows: Iterable[Node], parent_field: str) -> Dict[Any, List[Node]]:
    """Group rows by their foreign-key value, keeping input order."""
    index: Dict[Any, List[Node]] = defaultdict(list)
    for row in rows:
        parent_id = row.get(parent_field)
        if parent_id is not None:
            index[parent_id].append(row)
    return index


def _build(kind_name: str, row: Node, index: ChildIndex) -> Node:
    node = dict(row)
    for child in children_of(kind_name):
        node[child.collection] = [
            _build(child.name, child_row, index)
            for child_row in index[child.name].get(node.get("id"), [])
        ]
    return node


def assemble(
    root_rows: Iterable[Node],
    child_row_sets: Mapping[str, Iterable[Node]],
) -> List[Node]:
    """
    Build the hospital tree.

    Args:
        root_rows: Hospital rows
        child_row_sets: Rows per child kind name (``"department"``,
            ``"staff"``, ...); missing kinds are treated as empty

    Returns:
        One nested node per hospital row, in input order. Input rows are
        copied, never mutated.
    """
    index: ChildIndex = {
        kind.name: index_by_parent(child_row_sets.get(kind.name, ()), kind.parent_field)
        for kind in KINDS.values()
        if not kind.is_root
    }
    return [_build(ROOT_KIND, row, index) for row in root_rows]


def strip_children(kind_name: str, node: Node) -> Node:
    """Copy of ``node`` without the collections that other tables own."""
    owned_elsewhere = child_collections(kind_name)
    return {k: v for k, v in node.items() if k not in owned_elsewhere}


def flatten(hospitals: Iterable[Node]) -> List[Tuple[str, Node, Optional[str]]]:
    """
    Walk a tree parent-first.

    Returns:
        ``(kind_name, row, parent_id)`` triples where ``row`` has its child
        collections stripped
    """
    out: List[Tuple[str, Node, Optional[str]]] = []

    def walk(kind_name: str, node: Node, parent_id: Optional[str]) -> None:
        out.append((kind_name, strip_children(kind_name, node), parent_id))
        for child in children_of(kind_name):
            for child_node in node.get(child.collection) or []:
                walk(child.name, child_node, node.get("id"))

    for hospital in hospitals:
        walk(ROOT_KIND, hospital, None)
    return out


def rows_by_kind(hospitals: Iterable[Node]) -> Dict[str, List[Node]]:
    """
    Flatten a tree into per-kind row lists carrying their foreign keys.

    ``assemble(result["hospital"], result)`` rebuilds an equal tree.
    """
    rows: Dict[str, List[Node]] = {name: [] for name in KINDS}
    for kind_name, row, parent_id in flatten(hospitals):
        kind = get_kind(kind_name)
        if kind.parent_field:
            row = {**row, kind.parent_field: parent_id}
        rows[kind_name].append(row)
    return rows

