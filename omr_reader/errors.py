# errors.py
"""
Exceptions raised by the OMR reader.

Only image decoding is fatal to a grading call. QR decode failures are
handled inside the QR detector and never reach the caller.
"""


class OMRError(Exception):
    """Base class for all OMR reader errors."""


class ImageLoadError(OMRError, ValueError):
    """The input could not be decoded into an image."""


class ConfigurationError(OMRError, ValueError):
    """An answer sheet configuration violates its invariants."""


class AnswerKeyError(OMRError):
    """The answer key file is missing or malformed."""
