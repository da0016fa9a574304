# processor.py
"""
Main OMR processor.

Runs one grading pass over a sheet image: decode, read the identity QR code,
binarize, lay out the expected bubbles, measure them and resolve answers.
"""
import asyncio
import logging
import time

from . import answer_extractor
from .bubble_detector import BubbleDetector
from .grid_mapper import AnswerSheetLayout, map_regions_to_questions
from .image_processing import ImagePreprocessor, load_image
from .models import AnswerSheetConfig, ProcessingResult
from .qr_detector import QRDetector

logger = logging.getLogger(__name__)


class OMRProcessor:
    """
    Coordinates the preprocessing, QR, layout and bubble stages.

    Every call allocates its own image buffers; the instance only holds the
    sheet configuration. Calling `update_config` while a grading call is
    running on the same instance can hand that call a mix of old and new
    settings, so use one processor per concurrent caller or serialize the
    calls.
    """

    def __init__(self, sheet_config=None, preprocessor=None, qr_detector=None):
        if sheet_config is None or isinstance(sheet_config, dict):
            sheet_config = AnswerSheetConfig.from_overrides(sheet_config)
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.qr_detector = qr_detector or QRDetector()
        self.layout = AnswerSheetLayout(sheet_config)
        self.bubble_detector = BubbleDetector(self.layout.get_config())

    def get_config(self):
        return self.layout.get_config()

    def update_config(self, **changes):
        sheet_config = self.layout.update_config(**changes)
        self.bubble_detector = BubbleDetector(sheet_config)
        return sheet_config

    def _apply_question_count(self, num_questions):
        if num_questions is not None and num_questions != self.get_config().num_questions:
            self.update_config(num_questions=num_questions)
        return self.get_config()

    def _read_identity(self, image):
        height, width = image.shape[:2]
        regions = self.layout.get_qr_search_regions(width, height)
        return self.qr_detector.detect_in_regions(image, regions)

    def _grade(self, image, num_questions, start, include_bubbles=True, bubble_layout=None, binary=None):
        sheet_config = self._apply_question_count(num_questions)
        height, width = image.shape[:2]

        student_info = self._read_identity(image)
        if binary is None:
            binary = self.preprocessor.preprocess(image)
        if bubble_layout is None:
            bubble_layout = self.layout.generate_bubble_layout(width, height)

        detected = self.bubble_detector.detect_filled_bubbles(binary, bubble_layout)
        answers = self.bubble_detector.determine_answers(detected, sheet_config.num_questions)

        elapsed = (time.perf_counter() - start) * 1000
        logger.info("Processed sheet in %.1f ms (student=%s)", elapsed,
                    student_info.student_id if student_info else None)
        return ProcessingResult(
            student_info=student_info,
            answers=answers,
            detected_bubbles=detected if include_bubbles else None,
            processing_time=elapsed,
        )

    def process_answer_sheet(self, source, num_questions=None, include_bubbles=True):
        """
        Grades one sheet image.

        `source` is an encoded image (bytes, data URI, base64 text or file
        path). Raises ImageLoadError if it cannot be decoded; every other
        shortfall (no QR code, blank questions) comes back as a normal result.
        """
        start = time.perf_counter()
        image = load_image(source)
        return self._grade(image, num_questions, start, include_bubbles)

    async def aprocess_answer_sheet(self, source, num_questions=None, include_bubbles=True):
        """Async variant: waits for the decode in a worker thread, then grades synchronously."""
        start = time.perf_counter()
        image = await asyncio.to_thread(load_image, source)
        return self._grade(image, num_questions, start, include_bubbles)

    def process_image(self, image, num_questions=None, include_bubbles=True):
        """Grades an already decoded RGBA raster."""
        return self._grade(image, num_questions, time.perf_counter(), include_bubbles)

    def locate_bubbles(self, binary_image):
        """Every bubble-shaped blob of a binarized sheet, found without the layout."""
        return self.bubble_detector.detect_bubbles_using_components(binary_image)

    def process_with_contours(self, source, num_questions=None):
        """
        Grades a sheet using bubbles found in the image rather than the
        generated geometry. Falls back to the generated layout unless the
        blob finder recovers exactly the whole grid.
        """
        start = time.perf_counter()
        image = load_image(source)
        return self._grade_with_contours(image, num_questions, start)

    def process_image_with_contours(self, image, num_questions=None):
        """`process_with_contours` for an already decoded RGBA raster."""
        return self._grade_with_contours(image, num_questions, time.perf_counter())

    def _grade_with_contours(self, image, num_questions, start):
        sheet_config = self._apply_question_count(num_questions)
        binary = self.preprocessor.preprocess(image)

        regions = self.locate_bubbles(binary)
        bubble_layout = map_regions_to_questions(regions, sheet_config)
        if bubble_layout is None:
            logger.warning("Blob detection found %d regions, using the generated layout instead", len(regions))
        return self._grade(image, None, start, include_bubbles=False,
                           bubble_layout=bubble_layout, binary=binary)

    def answer_details(self, result):
        """Per-question confidence for a result that kept its bubbles."""
        if result.detected_bubbles is None:
            return None
        return answer_extractor.determine_answer_details(
            result.detected_bubbles, len(result.answers), self.get_config())
