# /omr_reader/config.py
"""
Configuration constants for the OMR reader.
"""
import os

# --- Core Paths (batch runner) ---
# Relative to the directory the batch runner is started from
BASE_DIR = os.getcwd()

INPUT_DIR = os.path.join(BASE_DIR, 'omr_input')
OUTPUT_VISUAL_DIR = os.path.join(BASE_DIR, 'graded_output')
CSV_DIR = os.path.join(BASE_DIR, 'csv_data')

ANSWER_KEY_PATH = os.path.join(CSV_DIR, 'answer_key.csv')
STUDENT_RESULTS_DIR = os.path.join(CSV_DIR, 'student_results')
IMAGE_EXTENSIONS = ('*.png', '*.jpg', '*.jpeg')


# --- Answer Sheet Defaults ---
DEFAULT_NUM_QUESTIONS = 120
DEFAULT_OPTIONS_PER_QUESTION = 4
DEFAULT_BUBBLE_RADIUS = 15
DEFAULT_COLUMNS_PER_PAGE = 4
DEFAULT_FILL_THRESHOLD = 0.3
DEFAULT_OPTIONS = ('A', 'B', 'C', 'D')
PERSIAN_OPTIONS = ('الف', 'ب', 'ج', 'د')
MIN_QUESTIONS = 1
MAX_QUESTIONS = 150


# --- Preprocessing Parameters ---
GAUSSIAN_BLUR_RADIUS = 3
ADAPTIVE_THRESHOLD_BLOCK_SIZE = 35
# A pixel turns black when it is more than this far below its local mean
ADAPTIVE_THRESHOLD_BIAS = 10
MORPHOLOGY_KERNEL_SIZE = 3


# --- Layout Parameters (fractions of page / column size) ---
LAYOUT_TOP_MARGIN = 0.18     # header, QR code and student info box
LAYOUT_BOTTOM_MARGIN = 0.12  # footer instructions
LAYOUT_LEFT_MARGIN = 0.12    # of the column width
LAYOUT_RIGHT_MARGIN = 0.08   # of the column width
BUBBLE_SIZE_FACTOR = 0.65
MAX_BUBBLE_SIZE = 32         # pixels

QR_REGION_SIZE_FACTOR = 0.12
QR_INFO_BOX_X = 0.05
QR_INFO_BOX_Y = 0.12
QR_CORNER_SIZE_FACTOR = 0.8
QR_CORNER_OFFSET = 15        # pixels


# --- Bubble Detection Parameters ---
DARK_PIXEL_THRESHOLD = 128
SAMPLE_PADDING = 0.15
CONTOUR_SCAN_STEP = 5
FLOOD_FILL_MAX_ITERATIONS = 1000
# Accepted blob area as multiples of the area of a bubble of the configured radius
BLOB_MIN_AREA_FACTOR = 0.5
BLOB_MAX_AREA_FACTOR = 2.0
BLOB_MIN_CIRCULARITY = 0.7
BLOB_ASPECT_RATIO_RANGE = (0.7, 1.3)
# A disk covers about pi/4 of its bounding box, a solid square all of it
BLOB_MAX_EXTENT = 0.9
CORNER_MARKER_MARGIN = 100   # pixels from edge to ignore as registration marks


# --- Visualization Parameters ---
VIS_CORRECT_ANSWER_COLOR = (0, 255, 0)   # Green
VIS_WRONG_ANSWER_COLOR = (0, 0, 255)     # Red
VIS_DEFAULT_BUBBLE_COLOR = (255, 0, 0)   # Blue for all expected bubbles
VIS_QR_REGION_COLOR = (0, 165, 255)      # Orange
VIS_TEXT_COLOR = (0, 0, 0)
VIS_THICKNESS_BUBBLE = 1
VIS_THICKNESS_ANSWER = 3
VIS_INFO_FONT_SCALE = 0.8
VIS_INFO_FONT_THICKNESS = 2
VIS_INFO_MARGIN = 30
