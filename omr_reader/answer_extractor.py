# answer_extractor.py
"""
Functions to extract the student's answers from the measured bubbles.

By default every question gets an answer: the darkest option wins even when
nothing clears the fill threshold, and a question without any bubble data
gets the first option label. Callers should read low confidence as "probably
blank". With `strict_answers` set, a question whose darkest bubble is not
filled yields NO_ANSWER instead.
"""
import logging
from collections import defaultdict

from .models import DetectedAnswer, NO_ANSWER

logger = logging.getLogger(__name__)


def _group_by_question(detected_bubbles):
    question_to_bubbles = defaultdict(list)
    for b in detected_bubbles:
        question_to_bubbles[b.question_number].append(b)
    return question_to_bubbles


def _option_rank(sheet_config):
    return {label: index for index, label in enumerate(sheet_config.options)}


def resolve_question(bubbles, sheet_config):
    """
    Picks the darkest bubble of one question.

    Ties go to the option listed first in the config. Returns
    (answer, darkness, margin to the runner-up).
    """
    rank = _option_rank(sheet_config)
    ordered = sorted(bubbles, key=lambda b: (-b.darkness, rank.get(b.option, len(rank))))
    best = ordered[0]
    runner_up = ordered[1].darkness if len(ordered) > 1 else 0.0
    answer = best.option
    if sheet_config.strict_answers and not best.is_filled:
        answer = NO_ANSWER
    return answer, best.darkness, best.darkness - runner_up


def determine_answer_details(detected_bubbles, num_questions, sheet_config):
    """One DetectedAnswer per question 1..num_questions."""
    question_to_bubbles = _group_by_question(detected_bubbles)
    default = NO_ANSWER if sheet_config.strict_answers else sheet_config.options[0]
    details = []
    missing = 0
    for q_num in range(1, num_questions + 1):
        bubbles_for_q = question_to_bubbles.get(q_num)
        if not bubbles_for_q:
            missing += 1
            details.append(DetectedAnswer(q_num, default, 0.0, 0.0))
            continue
        answer, darkness, margin = resolve_question(bubbles_for_q, sheet_config)
        details.append(DetectedAnswer(q_num, answer, darkness, margin))

    if missing:
        logger.warning("%d of %d questions had no bubble data, defaulted to %r",
                       missing, num_questions, default)
    return details


def determine_answers(detected_bubbles, num_questions, sheet_config):
    """Returns exactly `num_questions` answers, in question order."""
    answers = [d.answer for d in determine_answer_details(detected_bubbles, num_questions, sheet_config)]
    logger.info("Extracted answers for %d questions.", len(answers))
    return answers
