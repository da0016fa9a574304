# qr_detector.py
"""
QR code detection for student identification.

The sheet carries a QR code with the student's identity. Its payload may be
JSON, pipe-delimited or comma-delimited text, or a bare student id.
"""
import json
import logging

import cv2
import numpy as np

from .image_processing import to_bgr
from .models import StudentInfo, UNKNOWN

logger = logging.getLogger(__name__)

# Accepted JSON keys per field, first match wins
FIELD_ALIASES = {
    'student_id': ('studentId', 'id', 'student_id'),
    'student_name': ('studentName', 'name', 'student_name'),
    'test_id': ('testId', 'test', 'test_id'),
    'test_date': ('testDate', 'date', 'test_date'),
    'grade': ('grade', 'class', 'level'),
}
REQUIRED_FIELDS = ('student_id', 'student_name', 'test_id')
DELIMITED_FIELDS = ('student_id', 'student_name', 'test_id', 'test_date', 'grade')


def _first_alias(payload, field):
    for key in FIELD_ALIASES[field]:
        value = payload.get(key)
        if value not in (None, ''):
            return str(value)
    return None


def _build_info(values):
    for field in REQUIRED_FIELDS:
        if not values.get(field):
            values[field] = UNKNOWN
    for field in ('test_date', 'grade'):
        if not values.get(field):
            values[field] = None
    return StudentInfo(**values)


def parse_json_payload(text):
    if not text.strip().startswith('{'):
        return None
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return _build_info({field: _first_alias(payload, field) for field in FIELD_ALIASES})


def _parse_delimited(text, delimiter):
    if delimiter not in text:
        return None
    parts = [part.strip() for part in text.split(delimiter)]
    return _build_info(dict(zip(DELIMITED_FIELDS, parts)))


def parse_pipe_payload(text):
    return _parse_delimited(text, '|')


def parse_comma_payload(text):
    return _parse_delimited(text, ',')


def parse_raw_payload(text):
    """Anything else is taken to be the student id alone."""
    return StudentInfo(student_id=text.strip(), student_name=UNKNOWN, test_id=UNKNOWN)


PAYLOAD_PARSERS = (parse_json_payload, parse_pipe_payload, parse_comma_payload, parse_raw_payload)


def parse_payload(text):
    """Run the payload parsers in order; the first one that recognizes the text wins."""
    if text is None or not text.strip():
        return None
    for parser in PAYLOAD_PARSERS:
        info = parser(text)
        if info is not None:
            return info
    return None


def extract_region(image, region):
    """Copy of the part of the image under `region`, clipped to the image bounds."""
    height, width = image.shape[:2]
    x1, y1 = max(0, region.x), max(0, region.y)
    x2, y2 = min(width, region.x + region.width), min(height, region.y + region.height)
    if x2 <= x1 or y2 <= y1:
        return None
    return image[y1:y2, x1:x2].copy()


class QRDetector:
    """Decodes the identity QR code from candidate regions of a sheet."""

    def __init__(self):
        self.detector = cv2.QRCodeDetector()

    def decode(self, image):
        """Raw QR text from an image, or None when nothing decodes."""
        if image is None or image.size == 0:
            return None
        try:
            data, _, _ = self.detector.detectAndDecode(np.ascontiguousarray(to_bgr(image)))
        except (cv2.error, UnicodeDecodeError, ValueError) as e:
            logger.debug("QR decode failed: %s", e)
            return None
        return data or None

    def detect_qr_code(self, image):
        text = self.decode(image)
        if text is None:
            return None
        info = parse_payload(text)
        if info is not None:
            logger.info("Decoded student info for %s", info.student_id)
        return info

    def detect_in_regions(self, image, regions):
        """
        Try each region in order and return the first decoded StudentInfo.

        Returns None when no region holds a readable code; that is a normal
        outcome and grading goes on without identity.
        """
        for index, region in enumerate(regions):
            crop = extract_region(image, region)
            if crop is None:
                continue
            info = self.detect_qr_code(crop)
            if info is not None:
                logger.debug("QR code found in search region %d", index)
                return info
        logger.info("No QR code found in %d search regions", len(regions))
        return None
