"""Synthetic answer sheets for the OMR tests."""
import json

import cv2
import numpy as np
import pytest

from omr_reader.grid_mapper import AnswerSheetLayout
from omr_reader.models import AnswerSheetConfig

PAGE_WIDTH = 1200
PAGE_HEIGHT = 1600
QR_PAYLOAD = json.dumps({"studentId": "S1", "studentName": "Ali R", "testId": "T9"})


def encode_qr(text, size):
    """Black-on-white QR code image of at most size x size pixels."""
    code = cv2.QRCodeEncoder.create().encode(text)
    if code.ndim == 3:
        code = cv2.cvtColor(code, cv2.COLOR_BGR2GRAY)
    code = cv2.copyMakeBorder(code, 4, 4, 4, 4, cv2.BORDER_CONSTANT, value=255)
    scale = max(1, size // code.shape[0])
    return cv2.resize(code, None, fx=scale, fy=scale, interpolation=cv2.INTER_NEAREST)


def paste_gray(rgba, patch, x, y):
    h, w = patch.shape[:2]
    for channel in range(3):
        rgba[y:y + h, x:x + w, channel] = patch
    rgba[y:y + h, x:x + w, 3] = 255


def draw_sheet(sheet_config, answers, qr_text=None, width=PAGE_WIDTH, height=PAGE_HEIGHT):
    """
    White RGBA page with every expected bubble outlined and the given
    answers filled in. `answers` holds one label (or None for blank) per
    question.
    """
    image = np.full((height, width, 4), 255, dtype=np.uint8)
    layout = AnswerSheetLayout(sheet_config)
    bubble_layout = layout.generate_bubble_layout(width, height)

    for q_index, regions in enumerate(bubble_layout):
        for opt_index, region in enumerate(regions):
            center = (region.center_x, region.center_y)
            radius = region.width // 2
            cv2.circle(image, center, radius, (0, 0, 0, 255), 2)
            if answers[q_index] == sheet_config.options[opt_index]:
                cv2.circle(image, center, radius - 1, (20, 20, 20, 255), -1)

    if qr_text is not None:
        box = layout.get_qr_search_regions(width, height)[0]
        qr = encode_qr(qr_text, box.width - 16)
        paste_gray(image, qr, box.x + 8, box.y + 8)
    return image


def encode_png(rgba):
    ok, buffer = cv2.imencode('.png', cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGR))
    assert ok
    return buffer.tobytes()


@pytest.fixture
def small_config():
    return AnswerSheetConfig(num_questions=20, columns_per_page=4)


@pytest.fixture
def ground_truth(small_config):
    options = small_config.options
    return [options[(i * 3 + 1) % len(options)] for i in range(small_config.num_questions)]


@pytest.fixture
def sheet_image(small_config, ground_truth):
    return draw_sheet(small_config, ground_truth, qr_text=QR_PAYLOAD)


@pytest.fixture
def sheet_png(sheet_image):
    return encode_png(sheet_image)


@pytest.fixture
def random_rgba():
    rng = np.random.default_rng(7)
    image = rng.integers(0, 256, size=(13, 17, 4), dtype=np.uint8)
    image[:, :, 3] = 255
    return image


@pytest.fixture
def sheet_factory():
    return draw_sheet


@pytest.fixture
def png_encoder():
    return encode_png


@pytest.fixture
def qr_encoder():
    return encode_qr
