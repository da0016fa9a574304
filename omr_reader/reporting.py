# reporting.py
"""
Functions for generating final reports (CSV and visual image).
"""
import glob
import logging
import os

import cv2
import pandas as pd

from . import config
from .image_processing import to_bgr

logger = logging.getLogger(__name__)


# FUNCTION 1: Saves the individual result for one student
def save_results_csv(summary, output_path, student_info=None):
    """Saves the per-question results and the score summary to a CSV file."""
    df = pd.DataFrame(summary.details, columns=['question_number', 'correct_answer', 'student_answer', 'marks'])

    summary_rows = pd.DataFrame([
        {'question_number': 'Total', 'correct_answer': summary.total,
         'student_answer': 'Obtained', 'marks': summary.correct_count},
        {'question_number': 'Percentage', 'correct_answer': '',
         'student_answer': '', 'marks': f"{summary.percentage:.2f}%"},
    ])
    if student_info is not None:
        summary_rows = pd.concat([summary_rows, pd.DataFrame([
            {'question_number': 'Student', 'correct_answer': student_info.student_id,
             'student_answer': student_info.student_name, 'marks': student_info.test_id},
        ])], ignore_index=True)
    df = pd.concat([df, summary_rows], ignore_index=True)

    df.to_csv(output_path, index=False)
    logger.info("Results saved to %s", output_path)
    return output_path


# FUNCTION 2: Draws the expected bubbles, the chosen answers and a score header
def create_visual_feedback(base_image, result, answer_key=None, summary=None, qr_regions=None):
    """
    Returns a BGR copy of the sheet with every measured bubble outlined.

    Chosen answers are drawn thick: green when they match the key, red when
    they do not (blue when there is no key).
    """
    vis_image = to_bgr(base_image)
    answers = result.answers

    for region in qr_regions or []:
        cv2.rectangle(vis_image, (region.x, region.y),
                      (region.x + region.width, region.y + region.height),
                      config.VIS_QR_REGION_COLOR, config.VIS_THICKNESS_BUBBLE)

    for b in result.detected_bubbles or []:
        index = b.question_number - 1
        chosen = index < len(answers) and answers[index] == b.option
        color = config.VIS_DEFAULT_BUBBLE_COLOR
        thickness = config.VIS_THICKNESS_BUBBLE
        if chosen:
            thickness = config.VIS_THICKNESS_ANSWER
            if answer_key is not None and index < len(answer_key):
                correct = answer_key[index] == b.option
                color = config.VIS_CORRECT_ANSWER_COLOR if correct else config.VIS_WRONG_ANSWER_COLOR
        radius = max(1, min(b.region.width, b.region.height) // 2)
        cv2.circle(vis_image, (b.region.center_x, b.region.center_y), radius, color, thickness)

    # Header with identity and score
    lines = []
    if result.student_info is not None:
        lines.append(f"Student: {result.student_info.student_name} ({result.student_info.student_id})")
    if summary is not None:
        lines.append(f"Score: {summary.correct_count} / {summary.total} ({summary.percentage:.1f}%)")
    for i, text in enumerate(lines):
        position = (config.VIS_INFO_MARGIN, config.VIS_INFO_MARGIN * (i + 1))
        cv2.putText(vis_image, text, position, cv2.FONT_HERSHEY_SIMPLEX, config.VIS_INFO_FONT_SCALE,
                    config.VIS_TEXT_COLOR, config.VIS_INFO_FONT_THICKNESS)

    return vis_image


# FUNCTION 3: Compiles the per-sheet CSVs into one class report
def _read_sheet_summary(filepath):
    """Score and identity rows of one results CSV, or None if it has no score rows."""
    df = pd.read_csv(filepath, dtype=str, keep_default_na=False)
    if 'question_number' not in df.columns:
        return None
    df = df.set_index('question_number')
    if 'Total' not in df.index or 'Percentage' not in df.index:
        return None
    student = df.loc['Student'] if 'Student' in df.index else None
    return {
        'sheet': os.path.splitext(os.path.basename(filepath))[0],
        'student_id': student['correct_answer'] if student is not None else '',
        'test_id': student['marks'] if student is not None else '',
        'marks_obtained': int(df.loc['Total', 'marks']),
        'total_questions': int(df.loc['Total', 'correct_answer']),
        'percentage_score': float(df.loc['Percentage', 'marks'].rstrip('%')),
    }


def create_summary_report(results_directory, output_path):
    """
    One row per graded sheet followed by class statistics, written as a
    single CSV. Files without score rows are skipped.

    Returns the per-sheet DataFrame, or None when nothing was compiled.
    """
    csv_files = sorted(glob.glob(os.path.join(results_directory, '*.csv')))
    if not csv_files:
        logger.warning("No student result files found to create a summary.")
        return None

    rows = []
    for filepath in csv_files:
        row = _read_sheet_summary(filepath)
        if row is None:
            logger.warning("No score rows in %s, skipping it", filepath)
            continue
        rows.append(row)

    if not rows:
        logger.warning("No valid student data was compiled. Summary report will not be created.")
        return None

    summary_df = pd.DataFrame(rows)
    scores = summary_df['percentage_score']
    spread = scores.std() if len(scores) > 1 else 0.0
    stats_df = pd.DataFrame([
        ('Number of Students', len(summary_df)),
        ('Average Score (%)', f'{scores.mean():.2f}'),
        ('Highest Score (%)', f'{scores.max():.2f}'),
        ('Lowest Score (%)', f'{scores.min():.2f}'),
        ('Std Deviation', f'{spread:.2f}'),
    ], columns=['Statistic', 'Value'])

    with open(output_path, 'w', newline='') as f:
        summary_df.to_csv(f, index=False)
        f.write('\n--- Overall Statistics ---\n')
        stats_df.to_csv(f, index=False)
    logger.info("Wrote class summary for %d sheets to %s", len(summary_df), output_path)
    return summary_df
