import pytest

from omr_reader.answer_extractor import determine_answer_details, determine_answers, resolve_question
from omr_reader.config import PERSIAN_OPTIONS
from omr_reader.models import AnswerSheetConfig, BubbleRegion, DetectedBubble, NO_ANSWER

REGION = BubbleRegion.from_box(0, 0, 10, 10)


def bubble(question, option, darkness, threshold=0.3):
    return DetectedBubble(REGION, question, option, darkness, darkness > threshold)


@pytest.fixture
def cfg():
    return AnswerSheetConfig(num_questions=3, columns_per_page=1)


def test_darkest_option_wins(cfg):
    bubbles = [bubble(1, "A", 0.1), bubble(1, "B", 0.9), bubble(1, "C", 0.4), bubble(1, "D", 0.0)]
    assert determine_answers(bubbles, 1, cfg) == ["B"]


def test_tie_goes_to_first_listed_option(cfg):
    # Bubbles arrive out of option order; config order decides the tie
    bubbles = [bubble(1, "D", 0.8), bubble(1, "B", 0.8), bubble(1, "A", 0.2)]
    assert determine_answers(bubbles, 1, cfg) == ["B"]


def test_unfilled_question_still_answered(cfg):
    bubbles = [bubble(1, "A", 0.05), bubble(1, "B", 0.0), bubble(1, "C", 0.1), bubble(1, "D", 0.0)]
    assert determine_answers(bubbles, 1, cfg) == ["C"]


def test_always_returns_requested_count(cfg):
    bubbles = [bubble(2, "D", 0.9), bubble(7, "A", 0.9)]
    answers = determine_answers(bubbles, 3, cfg)
    assert answers == ["A", "D", "A"]


def test_zero_questions_returns_empty_list(cfg):
    assert determine_answers([bubble(1, "A", 1.0)], 0, cfg) == []


def test_strict_mode_leaves_blanks_empty():
    strict = AnswerSheetConfig(num_questions=3, strict_answers=True)
    bubbles = [bubble(1, "A", 0.1), bubble(1, "B", 0.2), bubble(2, "C", 0.95)]
    assert determine_answers(bubbles, 3, strict) == [NO_ANSWER, "C", NO_ANSWER]


def test_details_report_confidence_and_margin(cfg):
    bubbles = [bubble(1, "A", 0.2), bubble(1, "B", 0.7), bubble(2, "C", 0.5)]
    details = determine_answer_details(bubbles, 3, cfg)
    assert [d.question_number for d in details] == [1, 2, 3]
    assert details[0].answer == "B"
    assert details[0].confidence == pytest.approx(0.7)
    assert details[0].margin == pytest.approx(0.5)
    assert details[1].margin == pytest.approx(0.5)  # no runner-up
    assert (details[2].answer, details[2].confidence) == ("A", 0.0)


def test_resolve_question_uses_custom_labels():
    persian = AnswerSheetConfig(num_questions=1, options=PERSIAN_OPTIONS)
    answer, darkness, _ = resolve_question(
        [bubble(1, "ج", 0.6), bubble(1, "الف", 0.6)], persian)
    assert answer == "الف"
    assert darkness == 0.6
