"""Build the document outline from a flat sequence of structural elements."""
from __future__ import annotations

import logging
from typing import Iterator, List, Sequence, Tuple

from .models import PageRange, StructuralElement, StructureNode

LOGGER = logging.getLogger(__name__)

SECTION_TITLE_CHARS = 50
PATH_SEPARATOR = " → "
ROOT_LABEL = "Document"


def build_structure(elements: Sequence[StructuralElement]) -> List[StructureNode]:
    """Nest elements under the headings that precede them.

    Headings close every open heading of the same or a deeper level. Body
    elements never close headings; they attach to the innermost open one.
    """

    roots: List[StructureNode] = []
    open_headings: List[StructureNode] = []

    for index, element in enumerate(elements):
        if element.is_heading:
            while open_headings and open_headings[-1].level >= element.level:
                open_headings.pop()
        parent = open_headings[-1] if open_headings else None
        parent_path: Tuple[str, ...] = parent.section_path if parent else ()
        node = StructureNode(
            id=f"node_{index}",
            type=element.type,
            level=element.level,
            text=element.text,
            page_number=element.page_number,
            page_range=PageRange.single(element.page_number),
            section_path=parent_path + (element.text[:SECTION_TITLE_CHARS],),
            parent_id=parent.id if parent else None,
            numbering=element.numbering,
        )
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)
        if element.is_heading:
            open_headings.append(node)

    _assign_page_ranges(roots)
    LOGGER.debug("Built outline with %s roots from %s elements", len(roots), len(elements))
    return roots


def _leaf_end(node: StructureNode, next_sibling: StructureNode | None) -> int:
    if next_sibling is None:
        return node.page_number
    return max(node.page_number, next_sibling.page_number - 1)


def _assign_page_ranges(roots: List[StructureNode]) -> None:
    # (node, next sibling, children done)
    stack: List[Tuple[StructureNode, StructureNode | None, bool]] = [
        (node, roots[i + 1] if i + 1 < len(roots) else None, False)
        for i, node in reversed(list(enumerate(roots)))
    ]
    while stack:
        node, next_sibling, expanded = stack.pop()
        if not node.children:
            node.page_range = PageRange(node.page_number, _leaf_end(node, next_sibling))
            continue
        if expanded:
            end = max(node.page_number, node.children[-1].page_range.end)
            node.page_range = PageRange(node.page_number, end)
            continue
        stack.append((node, next_sibling, True))
        children = node.children
        for i in range(len(children) - 1, -1, -1):
            following = children[i + 1] if i + 1 < len(children) else None
            stack.append((children[i], following, False))


def flatten_structure(roots: Sequence[StructureNode]) -> Iterator[StructureNode]:
    """Yield nodes in document order (pre-order)."""

    stack = list(reversed(roots))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def section_path_string(path: Sequence[str]) -> str:
    return PATH_SEPARATOR.join(path) if path else ROOT_LABEL
