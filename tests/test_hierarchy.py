from __future__ import annotations

from typing import List

from taxdoc.ingest.hierarchy import build_structure, flatten_structure, section_path_string
from taxdoc.ingest.models import HEADING, PARAGRAPH, StructuralElement, StructureNode


def heading(text: str, level: int, page: int) -> StructuralElement:
    return StructuralElement(type=HEADING, level=level, text=text, page_number=page, confidence=0.9)


def paragraph(text: str, page: int) -> StructuralElement:
    return StructuralElement(type=PARAGRAPH, level=0, text=text, page_number=page, confidence=0.8)


def _sample_elements() -> List[StructuralElement]:
    return [
        heading("CHAPTER 1 Preliminary", 1, 1),
        paragraph("Interpretation.", 1),
        heading("1.1 Application", 2, 2),
        paragraph("Applies to residents.", 2),
        paragraph("Applies to companies.", 3),
        heading("CHAPTER 2 Rates", 1, 4),
        paragraph("Rates of tax.", 5),
    ]


def _assert_invariants(roots: List[StructureNode]) -> None:
    stack = [(root, None) for root in roots]
    while stack:
        node, parent = stack.pop()
        assert node.page_range.start <= node.page_range.end
        if parent is not None:
            assert parent.page_range.contains(node.page_range)
            assert len(node.section_path) >= len(parent.section_path)
            assert node.parent_id == parent.id
        stack.extend((child, node) for child in node.children)


def test_headings_nest_by_level_and_body_attaches_to_open_heading() -> None:
    roots = build_structure(_sample_elements())

    assert [root.text for root in roots] == ["CHAPTER 1 Preliminary", "CHAPTER 2 Rates"]
    chapter_one = roots[0]
    assert [child.text for child in chapter_one.children] == ["Interpretation.", "1.1 Application"]
    section = chapter_one.children[1]
    assert [child.id for child in section.children] == ["node_3", "node_4"]
    assert section.children[0].section_path == (
        "CHAPTER 1 Preliminary",
        "1.1 Application",
        "Applies to residents.",
    )
    assert roots[1].parent_id is None


def test_page_ranges_are_computed_bottom_up() -> None:
    roots = build_structure(_sample_elements())
    chapter_one, chapter_two = roots
    interpretation, section = chapter_one.children

    assert (interpretation.page_range.start, interpretation.page_range.end) == (1, 1)
    assert (section.children[0].page_range.start, section.children[0].page_range.end) == (2, 2)
    assert (section.children[1].page_range.start, section.children[1].page_range.end) == (3, 3)
    assert (section.page_range.start, section.page_range.end) == (2, 3)
    assert (chapter_one.page_range.start, chapter_one.page_range.end) == (1, 3)
    assert (chapter_two.page_range.start, chapter_two.page_range.end) == (4, 5)


def test_leaf_range_never_ends_before_it_starts() -> None:
    roots = build_structure([paragraph("First.", 3), paragraph("Second.", 3)])

    assert (roots[0].page_range.start, roots[0].page_range.end) == (3, 3)


def test_leaf_range_extends_to_next_sibling() -> None:
    roots = build_structure([paragraph("Long provision.", 2), paragraph("Next provision.", 5)])

    assert (roots[0].page_range.start, roots[0].page_range.end) == (2, 4)


def test_section_path_prefix_is_bounded() -> None:
    roots = build_structure([heading("X" * 80, 1, 1)])

    assert roots[0].section_path == ("X" * 50,)


def test_invariants_hold_for_mixed_nesting() -> None:
    elements: List[StructuralElement] = []
    page = 1
    for index in range(200):
        if index % 7 == 0:
            page += 1
        if index % 5 == 0:
            elements.append(heading(f"Heading {index}", index % 4 + 1, page))
        else:
            elements.append(paragraph(f"Body {index}.", page))

    roots = build_structure(elements)

    _assert_invariants(roots)
    assert [node.id for node in flatten_structure(roots)] == [f"node_{i}" for i in range(200)]


def test_deep_nesting_does_not_recurse() -> None:
    depth = 1500
    elements = [heading(f"Level {i}", i + 1, 1 + i // 50) for i in range(depth)]

    roots = build_structure(elements)
    nodes = list(flatten_structure(roots))

    assert len(roots) == 1
    assert len(nodes) == depth
    assert roots[0].page_range.end == nodes[-1].page_number
    _assert_invariants(roots)


def test_section_path_string() -> None:
    assert section_path_string(()) == "Document"
    assert section_path_string(("CHAPTER 1", "Section 2")) == "CHAPTER 1 → Section 2"
