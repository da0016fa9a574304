# models.py
"""
Data types passed between the OMR pipeline stages.
"""
import string
from dataclasses import dataclass, field, fields, replace, asdict
from typing import List, Optional, Tuple

from . import config
from .errors import ConfigurationError

UNKNOWN = 'Unknown'
NO_ANSWER = ''


@dataclass(frozen=True)
class BubbleRegion:
    """Axis-aligned box of one expected bubble, with its sampling center."""
    x: int
    y: int
    width: int
    height: int
    center_x: int
    center_y: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Bubble region must have a positive size, got {self.width}x{self.height}")
        if not (self.x <= self.center_x < self.x + self.width and
                self.y <= self.center_y < self.y + self.height):
            raise ValueError(f"Bubble center ({self.center_x}, {self.center_y}) lies outside its region")

    @classmethod
    def from_box(cls, x, y, width, height):
        return cls(x, y, width, height, x + width // 2, y + height // 2)


@dataclass(frozen=True)
class SearchRegion:
    """Candidate rectangle where a QR code may be printed."""
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class PreprocessorSettings:
    gaussian_blur_radius: int = config.GAUSSIAN_BLUR_RADIUS
    adaptive_threshold_block_size: int = config.ADAPTIVE_THRESHOLD_BLOCK_SIZE
    threshold_bias: int = config.ADAPTIVE_THRESHOLD_BIAS
    morphology_kernel_size: int = config.MORPHOLOGY_KERNEL_SIZE
    # Closing is an optional cleanup pass, off in the default pipeline
    apply_morphology: bool = False


# Keys accepted by AnswerSheetConfig.from_overrides besides the field names
_CONFIG_ALIASES = {
    'numQuestions': 'num_questions',
    'optionsPerQuestion': 'options_per_question',
    'bubbleRadius': 'bubble_radius',
    'columnsPerPage': 'columns_per_page',
    'bubbleFillThreshold': 'bubble_fill_threshold',
    'strictAnswers': 'strict_answers',
}


def default_option_labels(count):
    """A, B, C, ... for sheets without explicit labels."""
    if count > len(string.ascii_uppercase):
        raise ConfigurationError(f"Cannot generate labels for {count} options")
    return tuple(string.ascii_uppercase[:count])


@dataclass(frozen=True)
class AnswerSheetConfig:
    """
    Declared shape of an answer sheet.

    Instances are immutable; `updated` returns a merged copy so geometry
    derived from an older config is never reused by accident.
    """
    num_questions: int = config.DEFAULT_NUM_QUESTIONS
    options_per_question: int = config.DEFAULT_OPTIONS_PER_QUESTION
    bubble_radius: float = config.DEFAULT_BUBBLE_RADIUS
    columns_per_page: int = config.DEFAULT_COLUMNS_PER_PAGE
    bubble_fill_threshold: float = config.DEFAULT_FILL_THRESHOLD
    options: Tuple[str, ...] = config.DEFAULT_OPTIONS
    # Emit NO_ANSWER instead of the darkest option when nothing clears the threshold
    strict_answers: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'options', tuple(self.options))
        if len(self.options) != self.options_per_question:
            raise ConfigurationError(
                f"Got {len(self.options)} option labels for {self.options_per_question} options per question")
        if not (config.MIN_QUESTIONS <= self.num_questions <= config.MAX_QUESTIONS):
            raise ConfigurationError(
                f"num_questions must be between {config.MIN_QUESTIONS} and {config.MAX_QUESTIONS}, "
                f"got {self.num_questions}")
        if self.options_per_question < 1:
            raise ConfigurationError("options_per_question must be at least 1")
        if self.columns_per_page < 1:
            raise ConfigurationError("columns_per_page must be at least 1")
        if not (0.0 <= self.bubble_fill_threshold <= 1.0):
            raise ConfigurationError(
                f"bubble_fill_threshold must be within [0, 1], got {self.bubble_fill_threshold}")
        if self.bubble_radius <= 0:
            raise ConfigurationError("bubble_radius must be positive")

    @property
    def questions_per_column(self):
        return -(-self.num_questions // self.columns_per_page)

    @classmethod
    def from_overrides(cls, overrides=None):
        """Merge caller overrides (snake_case or camelCase keys) onto the defaults."""
        return cls().updated(**(overrides or {}))

    def updated(self, **changes):
        known = {f.name for f in fields(self)}
        normalized = {}
        for key, value in changes.items():
            name = _CONFIG_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown answer sheet option: {key}")
            if value is not None:
                normalized[name] = value

        # Keep options and options_per_question in step when only one is given
        if 'options' in normalized and 'options_per_question' not in normalized:
            normalized['options_per_question'] = len(normalized['options'])
        elif 'options_per_question' in normalized and 'options' not in normalized:
            count = normalized['options_per_question']
            if count != len(self.options):
                normalized['options'] = default_option_labels(count)
        return replace(self, **normalized)


@dataclass
class DetectedBubble:
    region: BubbleRegion
    question_number: int
    option: str
    darkness: float
    is_filled: bool


@dataclass
class DetectedAnswer:
    question_number: int
    answer: str
    confidence: float
    margin: float = 0.0


@dataclass
class StudentInfo:
    student_id: str
    student_name: str = UNKNOWN
    test_id: str = UNKNOWN
    test_date: Optional[str] = None
    grade: Optional[str] = None

    def to_dict(self):
        return {
            'studentId': self.student_id,
            'studentName': self.student_name,
            'testId': self.test_id,
            'testDate': self.test_date,
            'grade': self.grade,
        }


@dataclass
class ProcessingResult:
    """Everything a grading pass produces for the scoring and storage side."""
    student_info: Optional[StudentInfo]
    answers: List[str]
    detected_bubbles: Optional[List[DetectedBubble]] = None
    processing_time: Optional[float] = None  # milliseconds

    def to_dict(self, include_bubbles=False):
        payload = {
            'studentInfo': self.student_info.to_dict() if self.student_info else None,
            'answers': list(self.answers),
            'processingTime': self.processing_time,
        }
        if include_bubbles and self.detected_bubbles is not None:
            payload['detectedBubbles'] = [
                {
                    'region': asdict(b.region),
                    'questionNumber': b.question_number,
                    'option': b.option,
                    'darkness': b.darkness,
                    'isFilled': b.is_filled,
                }
                for b in self.detected_bubbles
            ]
        return payload


@dataclass
class GradeSummary:
    correct_count: int
    incorrect_count: int
    percentage: float
    total: int
    details: list = field(default_factory=list, repr=False)
