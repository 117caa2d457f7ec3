"""JSON projection of a document, as read and written by project files.

The projection uses camelCase keys, stores the root set as a list and keeps
image references project-relative.
"""

import json
import logging
import time
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Union

from mindcanvas.document import (
    CONTENT_TYPES,
    STRUCTURE_NODE,
    STRUCTURE_ROOT,
    Document,
    Edge,
    ImageContent,
    LinkContent,
    Node,
    OrderedIdSet,
    TextContent,
)
from mindcanvas.errors import ProjectFormatError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
APP_NAME = "MindCanvas"

PathLike = Union[str, Path]


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# ==================== Nodes ====================

def content_to_dict(content) -> Dict[str, Any]:
    match content:
        case TextContent(text=text, language=language):
            data = {"content": text, "language": language}
        case ImageContent(ratio=ratio, fit=fit, relative_path=rel, runtime_path=runtime):
            data = {"ratio": ratio, "fit": fit, "relativePath": rel, "runtimePath": runtime}
        case LinkContent(url=url, meta_title=title, meta_description=desc, meta_image=image):
            data = {"url": url, "metaTitle": title, "metaDescription": desc, "metaImage": image}
        case _:
            raise ProjectFormatError(f"Unsupported content {type(content).__name__}")
    data["contentType"] = content.kind
    return _drop_none(data)


def content_from_dict(data: Dict[str, Any]):
    kind = data.get("contentType", TextContent.kind)
    if kind not in CONTENT_TYPES:
        raise ProjectFormatError(f"Unknown contentType {kind!r}")
    if kind == TextContent.kind:
        return TextContent(text=str(data.get("content", "")), language=data.get("language"))
    if kind == ImageContent.kind:
        return ImageContent(
            ratio=float(data.get("ratio") or 1.0),
            fit=data.get("fit"),
            relative_path=data.get("relativePath"),
            runtime_path=data.get("runtimePath"),
        )
    return LinkContent(
        url=str(data.get("url", "")),
        meta_title=data.get("metaTitle"),
        meta_description=data.get("metaDescription"),
        meta_image=data.get("metaImage"),
    )


def node_to_dict(node: Node) -> Dict[str, Any]:
    """Flat, JSON-ready form of a node (ids are kept as they are)."""
    data = {
        "id": node.id,
        "structure": node.structure,
        "x": node.x,
        "y": node.y,
        "width": node.width,
        "height": node.height,
        "fixedSize": node.fixed_size,
        "parentId": node.parent_id,
        "childrenIds": list(node.children_ids),
        "class": node.css_class,
        "contentScale": node.content_scale,
    }
    data.update(content_to_dict(node.content))
    return _drop_none(data)


def node_from_dict(data: Dict[str, Any]) -> Node:
    if not isinstance(data, dict) or not data.get("id"):
        raise ProjectFormatError(f"Node entry without id: {data!r}")
    try:
        parent_id = data.get("parentId")
        return Node(
            id=str(data["id"]),
            structure=STRUCTURE_NODE if parent_id else STRUCTURE_ROOT,
            content=content_from_dict(data),
            parent_id=parent_id,
            children_ids=[str(c) for c in data.get("childrenIds") or []],
            x=float(data.get("x") or 0.0),
            y=float(data.get("y") or 0.0),
            width=float(data["width"]) if data.get("width") is not None else None,
            height=float(data["height"]) if data.get("height") is not None else None,
            fixed_size=bool(data.get("fixedSize", False)),
            css_class=data.get("class"),
            content_scale=data.get("contentScale"),
        )
    except (TypeError, ValueError) as exc:
        raise ProjectFormatError(f"Bad node {data.get('id')}: {exc}") from exc


def edge_to_dict(edge: Edge) -> Dict[str, Any]:
    return _drop_none({
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "sourceHandle": edge.source_handle,
        "targetHandle": edge.target_handle,
        "label": edge.label,
    })


def edge_from_dict(data: Dict[str, Any]) -> Edge:
    try:
        return Edge(
            id=str(data["id"]),
            source=str(data["source"]),
            target=str(data["target"]),
            source_handle=data.get("sourceHandle"),
            target_handle=data.get("targetHandle"),
            label=str(data.get("label") or ""),
        )
    except (KeyError, TypeError) as exc:
        raise ProjectFormatError(f"Bad edge entry {data!r}") from exc


# ==================== Asset paths ====================

def _localize(data: Dict[str, Any], project_root: Optional[Path]) -> Dict[str, Any]:
    """Swap an image's runtime path for a project-relative one."""
    runtime = data.pop("runtimePath", None)
    if data.get("relativePath") or not runtime:
        return data
    if project_root is not None:
        try:
            rel = Path(runtime).resolve().relative_to(project_root.resolve())
            data["relativePath"] = PurePosixPath(*rel.parts).as_posix()
            return data
        except ValueError:
            pass
    # Not committed into the project yet; keep where it lives now
    logger.warning("Image %s is outside the project, keeping runtime path", data.get("id"))
    data["runtimePath"] = runtime
    return data


def _resolve(content: ImageContent, project_root: Optional[Path]) -> ImageContent:
    if project_root is None or not content.relative_path:
        return content
    return ImageContent(
        ratio=content.ratio,
        fit=content.fit,
        relative_path=content.relative_path,
        runtime_path=str(project_root / content.relative_path),
    )


# ==================== Documents ====================

def to_projection(doc: Document, project_root: Optional[PathLike] = None) -> Dict[str, Any]:
    """Serialisable form of `doc`."""
    root = Path(project_root) if project_root is not None else None
    nodes = {}
    for node_id, node in doc.nodes.items():
        data = node_to_dict(node)
        if node.content_type == ImageContent.kind:
            data = _localize(data, root)
        nodes[node_id] = data
    return {
        "rootNodes": list(doc.root_nodes),
        "nodes": nodes,
        "edges": [edge_to_dict(e) for e in doc.edges],
    }


def from_projection(data: Dict[str, Any], project_root: Optional[PathLike] = None) -> Document:
    """Rebuild a document from its projection.

    References to nodes that are not in the table are dropped.
    """
    if not isinstance(data, dict):
        raise ProjectFormatError("Projection must be an object")
    raw_nodes = data.get("nodes") or {}
    if isinstance(raw_nodes, list):
        raw_nodes = {n.get("id"): n for n in raw_nodes if isinstance(n, dict)}
    if not isinstance(raw_nodes, dict):
        raise ProjectFormatError("'nodes' must be an object")

    root = Path(project_root) if project_root is not None else None
    nodes: Dict[str, Node] = {}
    for raw in raw_nodes.values():
        node = node_from_dict(raw)
        if isinstance(node.content, ImageContent):
            node.content = _resolve(node.content, root)
        nodes[node.id] = node

    for node in nodes.values():
        kept = [c for c in dict.fromkeys(node.children_ids) if c in nodes]
        if len(kept) != len(node.children_ids):
            logger.warning("Dropping dangling children of %s", node.id)
            node.children_ids = kept
        if node.parent_id is not None and node.parent_id not in nodes:
            logger.warning("Node %s had missing parent %s, making it a root",
                           node.id, node.parent_id)
            node.parent_id = None
            node.structure = STRUCTURE_ROOT

    # A child's parentId is authoritative; child lists are rebuilt to match it
    for node in nodes.values():
        kept = [c for c in node.children_ids if nodes[c].parent_id == node.id]
        if len(kept) != len(node.children_ids):
            logger.warning("Dropping children of %s that belong elsewhere", node.id)
            node.children_ids = kept
    for node in nodes.values():
        if node.parent_id is not None and node.id not in nodes[node.parent_id].children_ids:
            logger.warning("Node %s was missing from its parent %s, appending it",
                           node.id, node.parent_id)
            nodes[node.parent_id].children_ids.append(node.id)

    roots = OrderedIdSet(r for r in data.get("rootNodes") or []
                         if r in nodes and nodes[r].parent_id is None)
    for node in nodes.values():
        if node.parent_id is None:
            roots.add(node.id)

    edges: List[Edge] = []
    for raw in data.get("edges") or []:
        edge = edge_from_dict(raw)
        if edge.source in nodes and edge.target in nodes:
            edges.append(edge)
        else:
            logger.warning("Dropping edge %s with missing endpoint", edge.id)

    return Document(nodes=nodes, root_nodes=roots, edges=tuple(edges))


def dumps_project(doc: Document, project_root: Optional[PathLike] = None) -> str:
    file_content = {
        "version": FORMAT_VERSION,
        "meta": {"app": APP_NAME, "updatedAt": int(time.time() * 1000)},
        "model": to_projection(doc, project_root),
    }
    return json.dumps(file_content, indent=2, ensure_ascii=False)


def loads_project(content: str, project_root: Optional[PathLike] = None) -> Document:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ProjectFormatError(f"Project is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or "model" not in data:
        raise ProjectFormatError("Project file has no 'model'")
    return from_projection(data["model"], project_root)


def save_project(doc: Document, path: PathLike) -> Path:
    """Write `doc` next to its assets; the file's folder is the project root."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps_project(doc, path.parent), encoding="utf-8")
    logger.info("Project saved to %s", path)
    return path


def load_project(path: PathLike) -> Document:
    path = Path(path)
    doc = loads_project(path.read_text(encoding="utf-8"), path.parent)
    logger.info("Project loaded from %s (%d nodes)", path, len(doc.nodes))
    return doc
