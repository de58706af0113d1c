"""
Raster normalization helpers.

Frames and templates arrive from external collaborators either as NumPy
arrays (OpenCV channel order) or as PIL images. Everything downstream works on
contiguous single-channel ``uint8`` arrays.
"""

from typing import Any, Tuple

import cv2  # type: ignore
import numpy as np  # type: ignore
from PIL import Image

from .geometry import Box, Region
from .utils import get_logger

logger = get_logger(__name__)

OCR_MIN_HEIGHT = 32
OCR_SCALE_FACTOR = 2.0
OCR_BINARY_THRESHOLD = 127


def as_array(image: Any) -> np.ndarray:
    """Return ``image`` as a NumPy array in OpenCV channel order.

    PIL images are converted from RGB(A) to BGR(A); arrays pass through.
    """
    if isinstance(image, Image.Image):
        if image.mode in ("L", "I;16", "I", "F", "1", "P"):
            return np.asarray(image.convert("L"))
        if image.mode == "RGBA":
            return cv2.cvtColor(np.asarray(image), cv2.COLOR_RGBA2BGRA)
        return cv2.cvtColor(np.asarray(image.convert("RGB")), cv2.COLOR_RGB2BGR)
    return np.asarray(image)


def is_empty(image: Any) -> bool:
    """True when ``image`` is None or holds no pixels."""
    if image is None:
        return True
    if isinstance(image, Image.Image):
        return image.width == 0 or image.height == 0
    arr = np.asarray(image)
    return arr.ndim < 2 or arr.size == 0


def to_gray(image: Any) -> np.ndarray:
    """Convert an image to a contiguous single-channel ``uint8`` array.

    Colour input is reduced with the standard luma weighting
    (0.299 R + 0.587 G + 0.114 B) so matching does not depend on channel order
    or colour balance.

    Args:
        image: NumPy array (HxW, HxWx1, HxWx3 BGR, HxWx4 BGRA) or PIL image.

    Returns:
        np.ndarray: Grayscale image.

    Raises:
        ValueError: If the array has an unsupported shape.
    """
    arr = as_array(image)

    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)

    if arr.ndim == 2:
        gray = arr
    elif arr.ndim == 3 and arr.shape[2] == 1:
        gray = arr[:, :, 0]
    elif arr.ndim == 3 and arr.shape[2] == 3:
        gray = cv2.cvtColor(arr, cv2.COLOR_BGR2GRAY)
    elif arr.ndim == 3 and arr.shape[2] == 4:
        gray = cv2.cvtColor(arr, cv2.COLOR_BGRA2GRAY)
    else:
        raise ValueError(f"Unsupported image shape: {arr.shape}")

    return np.ascontiguousarray(gray)


def crop_region(frame: Any, region: Region) -> Tuple[np.ndarray, Box]:
    """Cut the pixel sub-image addressed by a fractional region.

    Args:
        frame: Full frame (array or PIL image).
        region: Fractional region relative to the frame.

    Returns:
        Tuple[np.ndarray, Box]: The sub-image and its pixel box inside the frame.
    """
    arr = as_array(frame)
    height, width = arr.shape[:2]
    box = region.to_pixels(width, height)
    sub = arr[box.y : box.bottom, box.x : box.right]
    return sub, box


def preprocess_for_ocr(image: Any) -> np.ndarray:
    """Upscale and binarize a crop so small UI text recognizes reliably.

    The crop is scaled 2x with nearest-neighbour sampling (more when it is
    shorter than 32 px), converted to luma and thresholded at 127.
    """
    gray = to_gray(image)
    height, width = gray.shape[:2]
    scale = OCR_SCALE_FACTOR
    if height < OCR_MIN_HEIGHT:
        scale = max(OCR_SCALE_FACTOR, OCR_MIN_HEIGHT / float(height))

    new_size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    upscaled = cv2.resize(gray, new_size, interpolation=cv2.INTER_NEAREST)
    _, binarized = cv2.threshold(upscaled, OCR_BINARY_THRESHOLD, 255, cv2.THRESH_BINARY)
    logger.debug(f"OCR preprocess: {width}x{height} -> {new_size[0]}x{new_size[1]}")
    return binarized
