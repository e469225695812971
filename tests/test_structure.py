from __future__ import annotations

import pytest

from conftest import make_page
from taxdoc.ingest.models import HEADING, LIST_ITEM, PARAGRAPH, NormalizedPage, Page, TextFragment
from taxdoc.ingest.structure import (
    FontProfile,
    HeadingHeuristics,
    StructureDetector,
    detect_numbering,
    is_all_caps,
)


def test_chapter_heading_on_second_page() -> None:
    pages = [
        NormalizedPage(1, "Preamble text of the Act."),
        NormalizedPage(2, "CHAPTER 1\n\nThis Act applies to every individual."),
    ]

    elements = StructureDetector().detect(pages)
    chapter = elements[1]

    assert chapter.type == HEADING
    assert chapter.numbering == "CHAPTER 1"
    assert chapter.confidence > 0.5
    assert chapter.page_number == 2
    assert chapter.level == 1
    assert elements[2].type == PARAGRAPH


@pytest.mark.parametrize(
    "text, expected",
    [
        ("CHAPTER IV General provisions", "CHAPTER IV"),
        ("Chapter one", "CHAPTER one"),
        ("chapter 7 Administration", "CHAPTER 7"),
        ("PART   II", "PART II"),
        ("Part two", "PART two"),
        ("Part ii General", "PART ii"),
        ("1.2.3 Scope of charge", "1.2.3"),
        ("12. Rates of tax", "12"),
        ("3) Returns", "3"),
        ("(a) the person", "a"),
        ("B. Relief", "B"),
        ("IV. Exemptions", "IV"),
        ("Plain paragraph text", None),
        ("800,000 naira", None),
    ],
)
def test_detect_numbering(text: str, expected: str | None) -> None:
    assert detect_numbering(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("CHAPTER 1", True),
        ("INCOME TAX (RATES)", True),
        ("AB", False),
        ("Chapter 1", False),
        ("123", False),
    ],
)
def test_is_all_caps(text: str, expected: bool) -> None:
    assert is_all_caps(text) is expected


def test_dotted_numbering_sets_heading_level() -> None:
    element = StructureDetector().classify("1.2 Scope of tax", page_number=3)

    assert element.type == HEADING
    assert element.level == 2
    assert element.numbering == "1.2"
    assert element.confidence == pytest.approx(0.6)


def test_all_caps_keyword_heading_without_numbering_is_level_one() -> None:
    element = StructureDetector().classify("SECTION ON RELIEFS", page_number=1)

    assert element.type == HEADING
    assert element.numbering is None
    assert element.level == 1


def test_bullet_is_list_item_with_inverted_confidence() -> None:
    element = StructureDetector().classify("• The taxpayer shall file returns.", page_number=1)

    assert element.type == LIST_ITEM
    assert element.level == 0
    assert element.confidence == pytest.approx(0.8)


def test_long_numbered_provision_is_list_item() -> None:
    text = "1) " + "The person shall keep records of income for every year of assessment. " * 2

    element = StructureDetector().classify(text.strip(), page_number=1)

    assert element.type == LIST_ITEM
    assert element.numbering == "1"


def test_long_paragraph_is_confidently_not_a_heading() -> None:
    text = "Every person who derives income in Nigeria shall be charged to tax. " * 4

    element = StructureDetector().classify(text.strip(), page_number=1)

    assert element.type == PARAGRAPH
    assert element.numbering is None
    assert element.confidence == pytest.approx(1.0)


def test_heuristics_are_tunable() -> None:
    strict = StructureDetector(HeadingHeuristics(heading_threshold=0.95))

    assert strict.classify("1.2 Scope of tax", page_number=1).type == PARAGRAPH
    assert strict.classify("CHAPTER 1", page_number=1).type == HEADING


def test_font_metrics_promote_large_lines_when_enabled() -> None:
    body = "The provisions of this part apply to all persons liable to pay tax in a year."
    fragments = (TextFragment(text="GENERAL PROVISIONS", font_size=18.0, x=72.0, y=50.0, page_number=1),) + tuple(
        TextFragment(text=body, font_size=11.0, x=72.0, y=90.0 + 16.0 * i, page_number=1) for i in range(3)
    )
    profile = FontProfile.from_pages([Page(page_number=1, fragments=fragments)])
    normalized = [NormalizedPage(1, "GENERAL PROVISIONS\n\n" + body)]

    neutral = StructureDetector().detect(normalized)
    informed = StructureDetector(font_profile=profile).detect(normalized)

    assert profile.body_size == pytest.approx(11.0)
    assert neutral[0].type == PARAGRAPH
    assert informed[0].type == HEADING
    assert informed[1].type == PARAGRAPH


def test_font_profile_is_neutral_for_body_text() -> None:
    profile = FontProfile.from_pages([make_page(1, ["Plain body text line"], font_size=11.0)])

    assert profile.body_size == pytest.approx(11.0)
    assert profile.score(1, "Plain body text line") == pytest.approx(0.5)
    assert profile.score(7, "Unknown page") == pytest.approx(0.5)
