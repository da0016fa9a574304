# /grade_sheets.py
"""
Main script to grade answer sheets in batch mode.

This script finds all images in the input directory, reads each sheet's
student QR code and answers, grades them against the answer key, and saves
the graded image and a results CSV per sheet plus a class summary.
"""
import argparse
import glob
import logging
import os
import sys

import cv2

from omr_reader import config, grader, reporting
from omr_reader.errors import AnswerKeyError, OMRError
from omr_reader.image_processing import ImagePreprocessor, load_image
from omr_reader.models import AnswerSheetConfig
from omr_reader.processor import OMRProcessor


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Grade photographed bubble answer sheets")
    parser.add_argument("--input-dir", default=config.INPUT_DIR, help="Directory of sheet images")
    parser.add_argument("--answer-key", default=config.ANSWER_KEY_PATH, help="CSV with question,answer columns")
    parser.add_argument("--output-dir", default=None,
                        help="Where graded images and CSVs go (defaults to the configured directories)")
    parser.add_argument("--num-questions", type=int, default=None,
                        help="Questions on the sheet (defaults to the answer key length)")
    parser.add_argument("--columns", type=int, default=config.DEFAULT_COLUMNS_PER_PAGE, help="Question columns per page")
    parser.add_argument("--threshold", type=float, default=config.DEFAULT_FILL_THRESHOLD, help="Bubble fill threshold (0..1)")
    parser.add_argument("--strict", action="store_true", help="Leave questions blank when no bubble is filled")
    parser.add_argument("--morphology", action="store_true", help="Apply a closing pass after thresholding")
    parser.add_argument("--contours", action="store_true", help="Locate bubbles from the image instead of the layout")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def setup_directories(output_dir=None):
    """Create output directories if they don't exist."""
    if output_dir:
        visual_dir = os.path.join(output_dir, 'graded_output')
        csv_dir = os.path.join(output_dir, 'csv_data')
    else:
        visual_dir, csv_dir = config.OUTPUT_VISUAL_DIR, config.CSV_DIR
    results_dir = os.path.join(csv_dir, 'student_results')
    os.makedirs(visual_dir, exist_ok=True)
    os.makedirs(results_dir, exist_ok=True)
    print("Output directories verified.")
    return visual_dir, csv_dir, results_dir


def _grade_and_report(processor, image_path, answer_key, visual_dir, results_dir, use_contours):
    sheet_name = os.path.splitext(os.path.basename(image_path))[0]

    # 1. Read identity and answers
    image = load_image(image_path)
    if use_contours:
        result = processor.process_image_with_contours(image)
    else:
        result = processor.process_image(image)

    # 2. Grade
    summary = grader.grade_answers(result.answers, answer_key)

    # 3. Generate reports, named after the student when the QR code was read
    student_name = sheet_name
    if result.student_info is not None:
        student_name = f"{result.student_info.student_id}_{sheet_name}"
    else:
        print(f"Warning: No student QR code found on {os.path.basename(image_path)}.")

    csv_output_path = os.path.join(results_dir, f"{student_name}.csv")
    reporting.save_results_csv(summary, csv_output_path, result.student_info)

    height, width = image.shape[:2]
    visual_feedback_image = reporting.create_visual_feedback(
        image, result, answer_key, summary,
        processor.layout.get_qr_search_regions(width, height),
    )
    visual_output_path = os.path.join(visual_dir, f"{student_name}_graded.png")
    if not cv2.imwrite(visual_output_path, visual_feedback_image):
        raise OSError(f"Could not write graded image to {visual_output_path}")
    print(f"Score: {summary.correct_count}/{summary.total} ({summary.percentage:.2f}%) "
          f"in {result.processing_time:.0f} ms. Saved graded image to {visual_output_path}")
    return summary


def process_single_sheet(processor, image_path, answer_key, visual_dir, results_dir, use_contours=False):
    """
    Executes the full OMR workflow for a single image sheet.

    Returns the grade summary, or None when the sheet could not be graded or
    its reports could not be written; the batch goes on with the next sheet.
    """
    try:
        return _grade_and_report(processor, image_path, answer_key, visual_dir, results_dir, use_contours)
    except (OMRError, OSError, cv2.error) as e:
        print(f"Error: Could not process {os.path.basename(image_path)}: {e}", file=sys.stderr)
        return None


def main(argv=None):
    """Main function to orchestrate the batch processing."""
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        answer_key = grader.load_answer_key(args.answer_key)
    except AnswerKeyError as e:
        print(f"FATAL ERROR: {e}. Cannot proceed without an answer key.", file=sys.stderr)
        return 1

    try:
        sheet_config = AnswerSheetConfig.from_overrides({
            'num_questions': args.num_questions or len(answer_key),
            'columns_per_page': args.columns,
            'bubble_fill_threshold': args.threshold,
            'strict_answers': args.strict,
        })
    except OMRError as e:
        print(f"FATAL ERROR: {e}", file=sys.stderr)
        return 1

    processor = OMRProcessor(sheet_config, preprocessor=ImagePreprocessor(apply_morphology=args.morphology))
    visual_dir, csv_dir, results_dir = setup_directories(args.output_dir)

    image_files = sorted(
        path for pattern in config.IMAGE_EXTENSIONS
        for path in glob.glob(os.path.join(args.input_dir, pattern))
    )
    if not image_files:
        print(f"No images found in the input directory: {args.input_dir}")
        return 0

    print(f"Found {len(image_files)} image(s) to process.")
    for image_path in image_files:
        print(f"\n--- Processing: {os.path.basename(image_path)} ---")
        process_single_sheet(processor, image_path, answer_key, visual_dir, results_dir, args.contours)

    print("\n--- Creating summary report of all students ---")
    reporting.create_summary_report(results_dir, os.path.join(csv_dir, 'student_answers.csv'))

    print("\n--- Batch processing complete. ---")
    return 0


if __name__ == '__main__':
    sys.exit(main())
