# grid_mapper.py
"""
Answer sheet geometry: where every question's bubbles are expected on a page,
where the identity QR code may be, and how loose blob detections map back
onto the question grid.
"""
import logging
import math
from dataclasses import dataclass

from . import config
from .models import AnswerSheetConfig, BubbleRegion, SearchRegion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayoutMargins:
    """Page margins as fractions; left/right are fractions of one column's width."""
    top: float = config.LAYOUT_TOP_MARGIN
    bottom: float = config.LAYOUT_BOTTOM_MARGIN
    left: float = config.LAYOUT_LEFT_MARGIN
    right: float = config.LAYOUT_RIGHT_MARGIN


def _as_sheet_config(sheet_config):
    if sheet_config is None or isinstance(sheet_config, dict):
        return AnswerSheetConfig.from_overrides(sheet_config)
    return sheet_config


def _bubble_region(x, y, size):
    width = max(1, math.floor(size))
    left, top = math.floor(x), math.floor(y)
    # Keep the center inside the box once it has been floored
    center_x = min(math.floor(x + size / 2), left + width - 1)
    center_y = min(math.floor(y + size / 2), top + width - 1)
    return BubbleRegion(left, top, width, width, max(left, center_x), max(top, center_y))


class AnswerSheetLayout:
    """
    Expected pixel geometry of a sheet for a given page size.

    Questions fill each column top to bottom before moving to the next one.
    Nothing is cached, so a config update takes effect on the next call.
    """

    def __init__(self, sheet_config=None, margins=None):
        self.config = _as_sheet_config(sheet_config)
        self.margins = margins or LayoutMargins()

    def get_config(self):
        return self.config

    def update_config(self, **changes):
        self.config = self.config.updated(**changes)
        return self.config

    def question_position(self, question_index):
        """(column, row) of a 0-based question index."""
        per_column = self.config.questions_per_column
        return question_index // per_column, question_index % per_column

    def bubble_size(self, page_width, page_height):
        cfg = self.config
        column_width = page_width / cfg.columns_per_page
        row_height = self._row_height(page_height)
        spacing = self._bubble_spacing(column_width)
        return min(spacing * config.BUBBLE_SIZE_FACTOR,
                   row_height * config.BUBBLE_SIZE_FACTOR,
                   config.MAX_BUBBLE_SIZE,
                   2 * cfg.bubble_radius)

    def _row_height(self, page_height):
        available = page_height * (1 - self.margins.top - self.margins.bottom)
        return available / self.config.questions_per_column

    def _bubble_spacing(self, column_width):
        usable = column_width * (1 - self.margins.left - self.margins.right)
        return usable / (self.config.options_per_question + 1)

    def generate_bubble_layout(self, page_width, page_height):
        """
        Returns one list of BubbleRegions per question, in question order,
        each holding the option bubbles left to right.
        """
        cfg = self.config
        column_width = page_width / cfg.columns_per_page
        top_margin = page_height * self.margins.top
        left_margin = column_width * self.margins.left
        row_height = self._row_height(page_height)
        spacing = self._bubble_spacing(column_width)
        size = self.bubble_size(page_width, page_height)

        layout = []
        for q in range(cfg.num_questions):
            column, row = self.question_position(q)
            base_x = column * column_width + left_margin
            y = top_margin + row * row_height + row_height / 2 - size / 2
            layout.append([
                _bubble_region(base_x + opt * spacing, y, size)
                for opt in range(cfg.options_per_question)
            ])

        logger.debug("Generated layout for %d questions (%d columns, bubble size %.1f px)",
                     cfg.num_questions, cfg.columns_per_page, size)
        return layout

    def get_qr_search_regions(self, page_width, page_height):
        """
        Candidate QR rectangles in priority order: the student info box
        first, then the top-left and top-right corners.
        """
        qr_size = min(page_width, page_height) * config.QR_REGION_SIZE_FACTOR
        corner = qr_size * config.QR_CORNER_SIZE_FACTOR
        offset = config.QR_CORNER_OFFSET
        return [
            SearchRegion(math.floor(page_width * config.QR_INFO_BOX_X),
                         math.floor(page_height * config.QR_INFO_BOX_Y),
                         math.floor(qr_size), math.floor(qr_size)),
            SearchRegion(offset, offset, math.floor(corner), math.floor(corner)),
            SearchRegion(math.floor(page_width - corner - offset), offset,
                         math.floor(corner), math.floor(corner)),
        ]


def map_regions_to_questions(regions, sheet_config):
    """
    Organizes a flat list of detected bubble regions into per-question groups.

    Regions are split into columns by x, each column is read top to bottom in
    rows of `options_per_question`, and each row left to right. Returns None
    when the count does not match the sheet, since a partial grid cannot be
    assigned reliably.
    """
    cfg = _as_sheet_config(sheet_config)
    expected = cfg.num_questions * cfg.options_per_question
    if len(regions) != expected:
        logger.warning("Found %d bubble regions, expected %d. Cannot map them to the grid.",
                       len(regions), expected)
        return None

    per_column = cfg.questions_per_column
    by_x = sorted(regions, key=lambda r: r.center_x)

    layout = []
    start = 0
    for column in range(cfg.columns_per_page):
        questions_here = max(0, min(per_column, cfg.num_questions - column * per_column))
        count = questions_here * cfg.options_per_question
        column_regions = sorted(by_x[start:start + count], key=lambda r: r.center_y)
        start += count

        for row in range(questions_here):
            row_regions = column_regions[row * cfg.options_per_question:(row + 1) * cfg.options_per_question]
            layout.append(sorted(row_regions, key=lambda r: r.center_x))

    logger.info("Mapped %d bubble regions to %d questions", len(regions), len(layout))
    return layout
