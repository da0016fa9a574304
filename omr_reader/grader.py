# grader.py
"""
Functions for grading the extracted answers against an answer key.
"""
import logging

import pandas as pd

from .errors import AnswerKeyError
from .models import GradeSummary

logger = logging.getLogger(__name__)


def load_answer_key(path):
    """
    Loads an answer key CSV with `question,answer` columns.

    Returns the answers as a list ordered by question number.
    """
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except FileNotFoundError:
        raise AnswerKeyError(f"Answer key file not found at {path}") from None
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise AnswerKeyError(f"Could not parse answer key {path}: {e}") from e

    if df.shape[1] < 2:
        raise AnswerKeyError(f"Answer key {path} needs 'question' and 'answer' columns")
    # Standardize column names for easier access
    df = df.iloc[:, :2].copy()
    df.columns = ['question', 'answer']
    try:
        df['question'] = df['question'].str.strip().astype(int)
    except ValueError:
        raise AnswerKeyError(f"Answer key {path} has non-numeric question numbers") from None

    df = df.sort_values('question')
    expected = list(range(1, len(df) + 1))
    if df['question'].tolist() != expected:
        raise AnswerKeyError(f"Answer key {path} must number questions 1..{len(df)} without gaps")

    answers = [str(a).strip() for a in df['answer']]
    logger.info("Loaded answer key with %d questions from %s", len(answers), path)
    return answers


def build_result_rows(student_answers, answer_key):
    """Per-question comparison rows for the CSV report."""
    rows = []
    for index, correct_ans in enumerate(answer_key):
        student_ans = student_answers[index] if index < len(student_answers) else ''
        is_correct = str(student_ans).strip().upper() == str(correct_ans).strip().upper()
        mark = 1 if is_correct else 0
        rows.append({
            'question_number': index + 1,
            'correct_answer': correct_ans,
            'student_answer': student_ans,
            'marks': mark,
        })
    return rows


def grade_answers(student_answers, answer_key):
    """
    Compares student answers to the key position by position.

    Every key entry the student did not match counts as incorrect; the
    percentage is taken over the length of the key.
    """
    rows = build_result_rows(student_answers, answer_key)
    total = len(answer_key)
    correct = sum(row['marks'] for row in rows)
    percentage = (100.0 * correct / total) if total else 0.0

    summary = GradeSummary(
        correct_count=correct,
        incorrect_count=total - correct,
        percentage=percentage,
        total=total,
        details=rows,
    )
    logger.info("Grading complete. Score: %d/%d (%.2f%%)", correct, total, percentage)
    return summary
