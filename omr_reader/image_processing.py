# image_processing.py
"""
Functions for loading and preprocessing images for OMR.

Images travel through the pipeline as RGBA uint8 arrays of shape (H, W, 4).
Every stage returns a new array of the same height and width and never
writes into its input.
"""
import base64
import binascii
import logging
import os
from dataclasses import replace

import cv2
import numpy as np

from .errors import ImageLoadError
from .models import PreprocessorSettings

logger = logging.getLogger(__name__)


# --- Decoding ---

def _source_bytes(source):
    """Turn a path, data URI, base64 string or raw buffer into encoded bytes."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    if isinstance(source, os.PathLike):
        source = os.fspath(source)
    if not isinstance(source, str):
        raise ImageLoadError(f"Unsupported image source type: {type(source).__name__}")

    if source.startswith('data:'):
        header, _, payload = source.partition(',')
        if ';base64' not in header:
            raise ImageLoadError("Only base64 data URIs are supported")
        source = payload
    elif os.path.exists(source):
        try:
            with open(source, 'rb') as f:
                return f.read()
        except OSError as e:
            raise ImageLoadError(f"Could not read image file {source}: {e}") from e

    try:
        return base64.b64decode(source, validate=True)
    except (binascii.Error, ValueError):
        raise ImageLoadError("Image source is neither a readable file nor base64 data") from None


def load_image(source):
    """
    Decodes an encoded image into an RGBA raster.

    Raises ImageLoadError when the data cannot be decoded; this is the only
    error that aborts a grading call.
    """
    data = _source_bytes(source)
    if not data:
        raise ImageLoadError("Image source is empty")

    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ImageLoadError("Could not decode image (corrupt or unsupported format)")

    if image.dtype != np.uint8:
        # 16-bit PNG/TIFF
        image = (image / 257).astype(np.uint8)
    if image.ndim == 2:
        rgba = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    elif image.shape[2] == 4:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)

    logger.info("Loaded image (shape=%s)", rgba.shape)
    return rgba


def to_bgr(image):
    """RGBA (or single channel) raster to OpenCV's BGR order."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2BGR)
    return cv2.cvtColor(image, cv2.COLOR_RGB2BGR)


# --- Helpers ---

def _intensity(image):
    """Channel 0 as float64; grayscale and binary rasters carry it in every channel."""
    if image.ndim == 2:
        return image.astype(np.float64)
    return image[:, :, 0].astype(np.float64)


def _from_intensity(values):
    """Build an opaque RGBA raster with R = G = B = values."""
    gray = np.clip(np.rint(values), 0, 255).astype(np.uint8)
    rgba = np.empty(gray.shape + (4,), dtype=np.uint8)
    rgba[:, :, 0] = gray
    rgba[:, :, 1] = gray
    rgba[:, :, 2] = gray
    rgba[:, :, 3] = 255
    return rgba


def _empty_like(image):
    height, width = image.shape[:2]
    return np.zeros((height, width, 4), dtype=np.uint8)


def gaussian_kernel_1d(radius):
    """
    1D Gaussian with sigma = radius / 3, normalized to sum 1.

    The 2D kernel is the outer product of this with itself, so blurring can
    be done as two 1D passes.
    """
    sigma = radius / 3.0
    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    kernel = np.exp(-(offsets * offsets) / (2 * sigma * sigma))
    return kernel / kernel.sum()


def _correlate_axis(values, kernel, axis):
    """Zero-padded 1D correlation along one axis."""
    radius = len(kernel) // 2
    pad = [(0, 0), (0, 0)]
    pad[axis] = (radius, radius)
    padded = np.pad(values, pad, mode='constant')
    length = values.shape[axis]
    out = np.zeros_like(values, dtype=np.float64)
    for i, weight in enumerate(kernel):
        if axis == 0:
            out += weight * padded[i:i + length, :]
        else:
            out += weight * padded[:, i:i + length]
    return out


def _window_bounds(length, half):
    idx = np.arange(length)
    return np.clip(idx - half, 0, length), np.clip(idx + half + 1, 0, length)


def box_mean(values, half):
    """
    Mean over a (2*half+1) square window clipped at the image border,
    computed from an integral image.
    """
    height, width = values.shape
    integral = np.zeros((height + 1, width + 1), dtype=np.float64)
    integral[1:, 1:] = values.cumsum(axis=0).cumsum(axis=1)

    y0, y1 = _window_bounds(height, half)
    x0, x1 = _window_bounds(width, half)
    sums = (integral[np.ix_(y1, x1)] - integral[np.ix_(y0, x1)]
            - integral[np.ix_(y1, x0)] + integral[np.ix_(y0, x0)])
    counts = np.outer(y1 - y0, x1 - x0)
    return sums / counts


def _odd_kernel(size):
    """Square structuring element spanning floor(size/2) pixels each way."""
    half = max(0, int(size) // 2)
    return np.ones((2 * half + 1, 2 * half + 1), dtype=np.uint8)


class ImagePreprocessor:
    """
    Grayscale, blur and binarize camera captures of answer sheets.

    Each method is a pure function of its input raster; the instance only
    holds tuning parameters.
    """

    def __init__(self, settings=None, **overrides):
        settings = settings or PreprocessorSettings()
        if overrides:
            settings = replace(settings, **overrides)
        self.settings = settings

    def to_grayscale(self, image):
        """Luminosity (BT.601) grayscale, stored in all three color channels with A = 255."""
        if image.size == 0:
            return _empty_like(image)
        if image.ndim == 2:
            return _from_intensity(image)
        code = cv2.COLOR_RGBA2GRAY if image.shape[2] == 4 else cv2.COLOR_RGB2GRAY
        gray = cv2.cvtColor(np.ascontiguousarray(image), code)
        return cv2.cvtColor(gray, cv2.COLOR_GRAY2RGBA)

    def gaussian_blur(self, image, radius=None):
        """
        Weighted Gaussian blur of channel 0.

        Near the border only in-bounds neighbors contribute and the result
        is divided by the weight actually sampled, so edges keep their
        brightness. A flat field comes back unchanged.
        """
        radius = self.settings.gaussian_blur_radius if radius is None else int(radius)
        if image.size == 0:
            return _empty_like(image)
        values = _intensity(image)
        if radius < 1:
            return _from_intensity(values)

        kernel = gaussian_kernel_1d(radius)
        weighted = _correlate_axis(_correlate_axis(values, kernel, 0), kernel, 1)
        # The kernel is separable, so the in-bounds weight is too
        ones = np.ones(values.shape, dtype=np.float64)
        weights = _correlate_axis(_correlate_axis(ones, kernel, 0), kernel, 1)
        return _from_intensity(weighted / weights)

    def adaptive_threshold(self, image, block_size=None):
        """
        Binarize against the local mean: black (0) when a pixel is more than
        the bias below the mean of its block, white (255) otherwise.
        """
        block_size = self.settings.adaptive_threshold_block_size if block_size is None else int(block_size)
        if image.size == 0:
            return _empty_like(image)
        values = _intensity(image)
        local_mean = box_mean(values, max(0, block_size // 2))
        binary = np.where(values < local_mean - self.settings.threshold_bias, 0, 255)
        return _from_intensity(binary)

    def morphology_close(self, image, kernel_size=None):
        """Dilation then erosion with the same square kernel, closing gaps in bubble strokes."""
        kernel_size = self.settings.morphology_kernel_size if kernel_size is None else int(kernel_size)
        if image.size == 0:
            return _empty_like(image)
        gray = np.clip(np.rint(_intensity(image)), 0, 255).astype(np.uint8)
        # Default border value leaves out-of-image pixels out of the max/min
        closed = cv2.morphologyEx(gray, cv2.MORPH_CLOSE, _odd_kernel(kernel_size))
        return _from_intensity(closed)

    def preprocess(self, image):
        """grayscale -> blur -> adaptive threshold (-> optional closing)."""
        processed = self.to_grayscale(image)
        processed = self.gaussian_blur(processed)
        processed = self.adaptive_threshold(processed)
        if self.settings.apply_morphology:
            processed = self.morphology_close(processed)
        logger.debug("Preprocessed image %s (morphology=%s)", image.shape[:2], self.settings.apply_morphology)
        return processed

