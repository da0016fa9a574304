# bubble_detector.py
"""
Functions to measure how filled the expected bubbles are, plus blob finders
for sheets whose bubble geometry is not known in advance.
"""
import logging
import math

import cv2
import numpy as np

from . import answer_extractor
from . import config
from .models import BubbleRegion, DetectedBubble

logger = logging.getLogger(__name__)


def _intensity(image):
    return image if image.ndim == 2 else image[:, :, 0]


def calculate_bubble_darkness(binary_image, region, padding=config.SAMPLE_PADDING):
    """
    Fraction of dark pixels in the central disk of a bubble region.

    Only the disk of radius min(w, h) * (1 - 2 * padding) / 2 is sampled so
    the printed circle outline does not count as fill. Returns 0.0 when no
    sample falls inside the image.
    """
    gray = _intensity(binary_image)
    height, width = gray.shape[:2]

    start_x = max(0, math.floor(region.x + region.width * padding))
    end_x = min(width, math.floor(region.x + region.width * (1 - padding)))
    start_y = max(0, math.floor(region.y + region.height * padding))
    end_y = min(height, math.floor(region.y + region.height * (1 - padding)))
    if end_x <= start_x or end_y <= start_y:
        return 0.0

    radius = min(region.width, region.height) * (1 - 2 * padding) / 2
    ys, xs = np.mgrid[start_y:end_y, start_x:end_x]
    disk = (xs - region.center_x) ** 2 + (ys - region.center_y) ** 2 <= radius * radius
    total = int(np.count_nonzero(disk))
    if total == 0:
        return 0.0

    dark = gray[start_y:end_y, start_x:end_x] < config.DARK_PIXEL_THRESHOLD
    return np.count_nonzero(dark & disk) / total


def blob_area_bounds(bubble_radius):
    """Pixel-area range a blob must fall in to count as a bubble."""
    area = math.pi * bubble_radius * bubble_radius
    return area * config.BLOB_MIN_AREA_FACTOR, area * config.BLOB_MAX_AREA_FACTOR


def _flood_fill(dark, visited, start_x, start_y, max_iterations=config.FLOOD_FILL_MAX_ITERATIONS):
    """
    4-neighbour flood fill over dark pixels from (start_x, start_y).

    Stops after `max_iterations` stack pops, so a very large dark area comes
    back as a partial blob instead of being walked in full.
    """
    height, width = dark.shape
    stack = [(start_x, start_y)]
    area = 0
    min_x = max_x = start_x
    min_y = max_y = start_y
    iterations = 0

    while stack and iterations < max_iterations:
        iterations += 1
        x, y = stack.pop()
        if x < 0 or x >= width or y < 0 or y >= height:
            continue
        if visited[y, x] or not dark[y, x]:
            continue

        visited[y, x] = True
        area += 1
        min_x, max_x = min(min_x, x), max(max_x, x)
        min_y, max_y = min(min_y, y), max(max_y, y)

        stack.append((x + 1, y))
        stack.append((x - 1, y))
        stack.append((x, y + 1))
        stack.append((x, y - 1))

    return area, min_x, min_y, max_x, max_y


def _is_bubble_shaped(mask, width, height):
    """Round, roughly square blobs only; rejects QR fragments, bars and solid blocks."""
    min_ratio, max_ratio = config.BLOB_ASPECT_RATIO_RANGE
    if not (min_ratio <= width / height <= max_ratio):
        return False
    if np.count_nonzero(mask) / (width * height) > config.BLOB_MAX_EXTENT:
        return False

    contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return False
    contour = max(contours, key=cv2.contourArea)
    perimeter = cv2.arcLength(contour, True)
    if perimeter == 0:
        return False
    circularity = 4 * np.pi * cv2.contourArea(contour) / (perimeter * perimeter)
    return circularity >= config.BLOB_MIN_CIRCULARITY


def _is_in_corner(cx, cy, img_shape):
    """Checks if a point is in a corner, likely a registration mark."""
    h, w = img_shape[:2]
    margin = config.CORNER_MARKER_MARGIN
    return (cx < margin or cx > w - margin) and (cy < margin or cy > h - margin)


class BubbleDetector:
    """Scores expected bubbles on a binarized sheet and turns them into answers."""

    def __init__(self, sheet_config):
        self.config = sheet_config

    def calculate_bubble_darkness(self, binary_image, region):
        return calculate_bubble_darkness(binary_image, region)

    def detect_filled_bubbles(self, binary_image, bubble_layout):
        """
        Measures every bubble of the layout.

        `bubble_layout` holds one list of regions per question, in question
        order; option labels are taken from the config by position.
        """
        cfg = self.config
        detected = []
        for question_index, question_regions in enumerate(bubble_layout):
            for option_index, region in enumerate(question_regions):
                if option_index >= len(cfg.options):
                    logger.warning("Question %d has more bubbles than option labels, ignoring the extra ones",
                                   question_index + 1)
                    break
                darkness = calculate_bubble_darkness(binary_image, region)
                detected.append(DetectedBubble(
                    region=region,
                    question_number=question_index + 1,
                    option=cfg.options[option_index],
                    darkness=darkness,
                    is_filled=darkness > cfg.bubble_fill_threshold,
                ))

        filled = sum(1 for b in detected if b.is_filled)
        logger.info("Measured %d bubbles, %d above the fill threshold", len(detected), filled)
        return detected

    def determine_answers(self, detected_bubbles, num_questions):
        return answer_extractor.determine_answers(detected_bubbles, num_questions, self.config)

    def detect_bubbles_using_contours(self, binary_image, expected_count):
        """
        Coarse blob finder for when the exact layout is unknown.

        Dark pixels are probed on a 5-pixel grid and grown with a capped
        flood fill; blobs whose area fits the configured bubble radius are
        kept, scanning stops after `expected_count` of them. The iteration
        cap means large bubbles can come back partial (and be rejected by
        the area check).
        """
        gray = _intensity(binary_image)
        height, width = gray.shape[:2]
        dark = gray < config.DARK_PIXEL_THRESHOLD
        visited = np.zeros((height, width), dtype=bool)
        min_area, max_area = blob_area_bounds(self.config.bubble_radius)

        regions = []
        step = config.CONTOUR_SCAN_STEP
        for y in range(0, height, step):
            for x in range(0, width, step):
                if visited[y, x] or not dark[y, x]:
                    continue
                area, min_x, min_y, max_x, max_y = _flood_fill(dark, visited, x, y)
                if min_area <= area <= max_area:
                    regions.append(BubbleRegion(
                        min_x, min_y, max_x - min_x + 1, max_y - min_y + 1,
                        (min_x + max_x) // 2, (min_y + max_y) // 2,
                    ))
                    if len(regions) >= expected_count:
                        return regions

        logger.debug("Flood fill scan found %d of %d expected blobs", len(regions), expected_count)
        return regions

    def detect_bubbles_using_components(self, binary_image, expected_count=None):
        """
        Connected-component blob finder, so blob size is never truncated.

        Besides the area bounds, a blob must be bubble shaped (aspect ratio,
        circularity, not a solid block) and lie outside the page corners.
        Blobs are returned in the order their top-left pixel is reached
        scanning row by row; `expected_count` caps the list, None keeps
        every candidate.
        """
        gray = _intensity(binary_image)
        dark = (gray < config.DARK_PIXEL_THRESHOLD).astype(np.uint8)
        if dark.size == 0:
            return []
        count, labels, stats, _ = cv2.connectedComponentsWithStats(dark, connectivity=4)
        min_area, max_area = blob_area_bounds(self.config.bubble_radius)

        regions = []
        rejected = 0
        for label in range(1, count):
            x, y, w, h, area = (int(v) for v in stats[label])
            if not (min_area <= area <= max_area):
                continue
            center_x, center_y = x + (w - 1) // 2, y + (h - 1) // 2
            mask = (labels[y:y + h, x:x + w] == label).astype(np.uint8)
            if _is_in_corner(center_x, center_y, gray.shape) or not _is_bubble_shaped(mask, w, h):
                rejected += 1
                continue
            regions.append(BubbleRegion(x, y, w, h, center_x, center_y))

        regions.sort(key=lambda r: (r.y, r.x))
        logger.debug("Connected components found %d candidate bubbles (%d rejected by shape or position)",
                     len(regions), rejected)
        if expected_count is None:
            return regions
        return regions[:expected_count]
