"""Field-level patches between document snapshots.

A patch touches one node field, one node entry, one root-set member or one
run of manual edges. Every forward patch list has a matching inverse list so
undo/redo never needs a full snapshot.
"""

from dataclasses import dataclass, fields, replace
from difflib import SequenceMatcher
from typing import Any, List, Optional, Sequence, Tuple

from mindcanvas.document import Document, Edge, Node, OrderedIdSet
from mindcanvas.errors import PatchError


OP_ADD = "add"
OP_REMOVE = "remove"
OP_REPLACE = "replace"
OP_SPLICE = "splice"

NODE_FIELDS = tuple(f.name for f in fields(Node))

PatchPair = Tuple[List["Patch"], List["Patch"]]


@dataclass(frozen=True)
class Patch:
    """A single structural change.

    Paths:
        ("nodes", id)            add (value=Node) / remove
        ("nodes", id, field)     replace (value=new field value)
        ("root_nodes", id)       add (value=index) / remove
        ("edges",)               splice (value=(index, delete_count, items))
    """
    op: str
    path: Tuple[str, ...]
    value: Any = None


# ==================== Diffing ====================

def diff_node(node_id: str, old: Optional[Node], new: Optional[Node]) -> PatchPair:
    """Patches turning `old` into `new` and back."""
    if old is None and new is None:
        return [], []
    if old is None:
        return ([Patch(OP_ADD, ("nodes", node_id), new)],
                [Patch(OP_REMOVE, ("nodes", node_id))])
    if new is None:
        return ([Patch(OP_REMOVE, ("nodes", node_id))],
                [Patch(OP_ADD, ("nodes", node_id), old)])

    forward: List[Patch] = []
    inverse: List[Patch] = []
    for name in NODE_FIELDS:
        before = getattr(old, name)
        after = getattr(new, name)
        if before == after:
            continue
        if name == "children_ids":
            before, after = tuple(before), tuple(after)
        forward.append(Patch(OP_REPLACE, ("nodes", node_id, name), after))
        inverse.append(Patch(OP_REPLACE, ("nodes", node_id, name), before))
    return forward, inverse


def diff_roots(old: Sequence[str], new: Sequence[str]) -> PatchPair:
    """Membership diff of two root sequences, keeping insertion positions."""
    old_set, new_set = set(old), set(new)
    removed = [(i, rid) for i, rid in enumerate(old) if rid not in new_set]
    added = [(j, rid) for j, rid in enumerate(new) if rid not in old_set]

    forward = [Patch(OP_REMOVE, ("root_nodes", rid)) for _, rid in reversed(removed)]
    forward += [Patch(OP_ADD, ("root_nodes", rid), j) for j, rid in added]

    inverse = [Patch(OP_REMOVE, ("root_nodes", rid)) for _, rid in reversed(added)]
    inverse += [Patch(OP_ADD, ("root_nodes", rid), i) for i, rid in removed]
    return forward, inverse


def diff_edges(old: Sequence[Edge], new: Sequence[Edge]) -> PatchPair:
    """Splice patches between two edge lists.

    Splices are emitted back to front so earlier indices stay valid while
    they are applied in order.
    """
    old, new = list(old), list(new)
    if old == new:
        return [], []
    matcher = SequenceMatcher(None, old, new, autojunk=False)
    opcodes = [op for op in matcher.get_opcodes() if op[0] != "equal"]

    forward = [
        Patch(OP_SPLICE, ("edges",), (i1, i2 - i1, tuple(new[j1:j2])))
        for _, i1, i2, j1, j2 in reversed(opcodes)
    ]
    inverse = [
        Patch(OP_SPLICE, ("edges",), (j1, j2 - j1, tuple(old[i1:i2])))
        for _, i1, i2, j1, j2 in reversed(opcodes)
    ]
    return forward, inverse


# ==================== Applying ====================

def apply_patches(doc: Document, patches: Sequence[Patch]) -> Document:
    """Return a new snapshot with `patches` applied.

    `doc` is left untouched and unchanged nodes keep their identity. Raises
    PatchError if any patch does not fit the snapshot.
    """
    nodes = dict(doc.nodes)
    roots: Optional[List[str]] = None
    edges: Optional[List[Edge]] = None

    for patch in patches:
        area = patch.path[0] if patch.path else None
        if area == "nodes":
            _apply_node_patch(nodes, patch)
        elif area == "root_nodes":
            if roots is None:
                roots = list(doc.root_nodes)
            _apply_root_patch(roots, patch)
        elif area == "edges":
            if edges is None:
                edges = list(doc.edges)
            _apply_edge_patch(edges, patch)
        else:
            raise PatchError(f"Unknown patch path {patch.path!r}", patch.path)

    return Document(
        nodes=nodes,
        root_nodes=OrderedIdSet(roots) if roots is not None else doc.root_nodes,
        edges=tuple(edges) if edges is not None else doc.edges,
    )


def _apply_node_patch(nodes: dict, patch: Patch):
    node_id = patch.path[1]
    if len(patch.path) == 2:
        if patch.op == OP_ADD:
            if node_id in nodes:
                raise PatchError(f"Node {node_id} already exists", patch.path)
            nodes[node_id] = patch.value
        elif patch.op == OP_REMOVE:
            if node_id not in nodes:
                raise PatchError(f"Cannot remove missing node {node_id}", patch.path)
            del nodes[node_id]
        else:
            raise PatchError(f"Bad node op {patch.op!r}", patch.path)
        return

    name = patch.path[2]
    node = nodes.get(node_id)
    if node is None:
        raise PatchError(f"Cannot patch missing node {node_id}", patch.path)
    if patch.op != OP_REPLACE or name not in NODE_FIELDS:
        raise PatchError(f"Bad field patch {patch.op} {name!r}", patch.path)
    value = list(patch.value) if name == "children_ids" else patch.value
    nodes[node_id] = replace(node, **{name: value})


def _apply_root_patch(roots: List[str], patch: Patch):
    root_id = patch.path[1]
    if patch.op == OP_ADD:
        if root_id in roots:
            raise PatchError(f"Root {root_id} already present", patch.path)
        roots.insert(patch.value if patch.value is not None else len(roots), root_id)
    elif patch.op == OP_REMOVE:
        if root_id not in roots:
            raise PatchError(f"Root {root_id} not present", patch.path)
        roots.remove(root_id)
    else:
        raise PatchError(f"Bad root op {patch.op!r}", patch.path)


def _apply_edge_patch(edges: List[Edge], patch: Patch):
    if patch.op != OP_SPLICE:
        raise PatchError(f"Bad edge op {patch.op!r}", patch.path)
    index, delete_count, items = patch.value
    if index < 0 or index + delete_count > len(edges):
        raise PatchError(
            f"Edge splice {index}+{delete_count} out of range ({len(edges)})", patch.path
        )
    edges[index:index + delete_count] = list(items)
