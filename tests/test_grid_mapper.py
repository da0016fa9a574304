import random

import pytest

from omr_reader.grid_mapper import AnswerSheetLayout, LayoutMargins, map_regions_to_questions
from omr_reader.models import AnswerSheetConfig, BubbleRegion, SearchRegion


def test_questions_fill_columns_top_to_bottom():
    layout = AnswerSheetLayout({"numQuestions": 120, "columnsPerPage": 4})
    assert layout.get_config().questions_per_column == 30
    assert layout.question_position(0) == (0, 0)
    assert layout.question_position(29) == (0, 29)
    assert layout.question_position(30) == (1, 0)
    assert layout.question_position(119) == (3, 29)


def test_generated_geometry_is_column_major():
    layout = AnswerSheetLayout(AnswerSheetConfig(num_questions=120, columns_per_page=4))
    bubbles = layout.generate_bubble_layout(2480, 3508)

    assert len(bubbles) == 120
    assert all(len(q) == 4 for q in bubbles)
    q1, q2, q31 = bubbles[0], bubbles[1], bubbles[30]
    # Question 31 starts column 1 on the same row as question 1
    assert q31[0].y == q1[0].y
    assert q31[0].x > q1[-1].x
    assert q2[0].x == q1[0].x
    assert q2[0].y > q1[0].y
    # Options run left to right
    assert [r.x for r in q1] == sorted(r.x for r in q1)


def test_bubble_size_is_capped_on_large_pages():
    layout = AnswerSheetLayout(AnswerSheetConfig(num_questions=4, columns_per_page=1, bubble_radius=100))
    region = layout.generate_bubble_layout(8000, 8000)[0][0]
    assert region.width == 32
    assert region.height == 32


def test_bubble_radius_limits_bubble_size():
    layout = AnswerSheetLayout(AnswerSheetConfig(num_questions=4, columns_per_page=1, bubble_radius=10))
    region = layout.generate_bubble_layout(4000, 4000)[0][0]
    assert region.width == 20


def test_regions_are_valid_and_on_page():
    layout = AnswerSheetLayout(AnswerSheetConfig(num_questions=150, columns_per_page=3))
    for width, height in ((800, 1100), (1240, 1754), (300, 400)):
        for question in layout.generate_bubble_layout(width, height):
            for r in question:
                assert r.width > 0 and r.height > 0
                assert r.x <= r.center_x < r.x + r.width
                assert r.y <= r.center_y < r.y + r.height
                assert 0 <= r.x and r.x + r.width <= width
                assert 0 <= r.y and r.y + r.height <= height


def test_margins_are_fractions_of_page():
    layout = AnswerSheetLayout(AnswerSheetConfig(num_questions=10, columns_per_page=1))
    small = layout.generate_bubble_layout(1000, 1000)
    large = layout.generate_bubble_layout(1000, 2000)
    assert small[0][0].center_y / 1000 == pytest.approx(large[0][0].center_y / 2000, abs=0.01)

    shifted = AnswerSheetLayout(layout.get_config(), margins=LayoutMargins(top=0.3))
    assert shifted.generate_bubble_layout(1000, 1000)[0][0].y > small[0][0].y


def test_update_config_regenerates_geometry():
    layout = AnswerSheetLayout(AnswerSheetConfig(num_questions=10, columns_per_page=2))
    before = layout.generate_bubble_layout(1000, 1400)
    layout.update_config(numQuestions=40, optionsPerQuestion=5)
    after = layout.generate_bubble_layout(1000, 1400)
    assert len(before) == 10 and len(after) == 40
    assert len(after[0]) == 5
    assert layout.get_config().options == ("A", "B", "C", "D", "E")


def test_qr_search_regions_priority_order():
    regions = AnswerSheetLayout().get_qr_search_regions(1000, 1400)
    assert regions[0] == SearchRegion(50, 168, 120, 120)
    assert regions[1] == SearchRegion(15, 15, 96, 96)
    assert regions[2] == SearchRegion(889, 15, 96, 96)


def _grid_regions(sheet_config, width=1000, height=1400):
    layout = AnswerSheetLayout(sheet_config).generate_bubble_layout(width, height)
    return layout, [r for question in layout for r in question]


def test_map_regions_recovers_question_order():
    cfg = AnswerSheetConfig(num_questions=10, columns_per_page=3)
    layout, flat = _grid_regions(cfg)
    random.Random(3).shuffle(flat)
    assert map_regions_to_questions(flat, cfg) == layout


def test_map_regions_rejects_partial_grid():
    cfg = AnswerSheetConfig(num_questions=10, columns_per_page=2)
    _, flat = _grid_regions(cfg)
    assert map_regions_to_questions(flat[:-1], cfg) is None
    assert map_regions_to_questions([], cfg) is None


def test_bubble_region_invariants():
    with pytest.raises(ValueError):
        BubbleRegion(0, 0, 0, 10, 0, 5)
    with pytest.raises(ValueError):
        BubbleRegion(0, 0, 10, 10, 12, 5)
    assert BubbleRegion.from_box(10, 20, 8, 6) == BubbleRegion(10, 20, 8, 6, 14, 23)
