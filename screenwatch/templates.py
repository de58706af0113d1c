"""
Reference template store.

Holds grayscale reference rasters keyed by identifier. Identifiers are
case-insensitive. Templates can be added directly, decoded from encoded bytes
or loaded from a directory of image files (identifier = file stem).
"""

import os
import re
import threading
from typing import Any, Dict, List, Optional

import cv2  # type: ignore
import numpy as np  # type: ignore

from .errors import InvalidReferenceImageError
from .imaging import is_empty, to_gray
from .utils import get_logger, list_image_files

logger = get_logger(__name__)

_REFERENCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_valid_reference_id(reference_id: str) -> bool:
    """Check an identifier is usable as a template name and file stem."""
    return bool(reference_id) and bool(_REFERENCE_ID_PATTERN.match(reference_id))


class TemplateStore:
    """Thread-safe in-memory store of grayscale reference templates."""

    def __init__(self):
        self._images: Dict[str, np.ndarray] = {}
        self._lock = threading.Lock()

    def __contains__(self, reference_id: str) -> bool:
        with self._lock:
            return reference_id.lower() in self._images

    def __len__(self) -> int:
        with self._lock:
            return len(self._images)

    def ids(self) -> List[str]:
        with self._lock:
            return sorted(self._images)

    def add(self, reference_id: str, image: Any) -> None:
        """Add or replace a template.

        Raises:
            ValueError: If the identifier is invalid or the image is empty.
        """
        if not is_valid_reference_id(reference_id):
            raise ValueError(f"Invalid reference id: {reference_id!r}")
        if is_empty(image):
            raise ValueError(f"Empty image for reference id: {reference_id!r}")

        gray = to_gray(image)
        with self._lock:
            self._images[reference_id.lower()] = gray

    def add_bytes(self, reference_id: str, data: bytes) -> None:
        """Decode PNG/JPEG bytes and add the result as a template.

        Raises:
            InvalidReferenceImageError: If the bytes do not decode to an image.
        """
        buffer = np.frombuffer(data or b"", dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED) if buffer.size else None
        if image is None:
            raise InvalidReferenceImageError(reference_id)
        self.add(reference_id, image)

    def get(self, reference_id: str) -> Optional[np.ndarray]:
        if not reference_id:
            return None
        with self._lock:
            return self._images.get(reference_id.lower())

    def remove(self, reference_id: str) -> bool:
        with self._lock:
            return self._images.pop(reference_id.lower(), None) is not None

    def load_directory(self, templates_dir: str) -> int:
        """Load every image file in ``templates_dir``.

        Files with invalid names or unreadable content are skipped.

        Returns:
            int: Number of templates loaded.
        """
        if not os.path.isdir(templates_dir):
            logger.warning(f"Templates directory not found: {templates_dir}")
            return 0

        loaded = 0
        for name, path in list_image_files(templates_dir).items():
            if not is_valid_reference_id(name):
                logger.warning(f"Skipping template with invalid name: {name}")
                continue

            img = cv2.imread(path, cv2.IMREAD_GRAYSCALE)
            if img is None or img.size == 0:
                logger.warning(f"Cannot read template: {path}")
                continue

            self.add(name, img)
            loaded += 1
            logger.debug(f"Loaded template: {name} ({img.shape[1]}x{img.shape[0]})")

        logger.info(f"TemplateStore: {loaded} templates loaded from {templates_dir}")
        return loaded
