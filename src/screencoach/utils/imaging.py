"""Image processing utilities for screencoach.

Shared conversion, resizing and JPEG encoding used by the capture and
realtime modules.
"""

from __future__ import annotations

import io
import logging

import cv2
import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)


def bgra_to_bgr(image: np.ndarray) -> np.ndarray:
    """Drop the alpha channel from a BGRA screen grab."""
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert a BGR or BGRA image to single-channel grayscale."""
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def resize_for_mllm(image: np.ndarray, max_dimension: int = 1568) -> np.ndarray:
    """Downscale an image so its longest side fits ``max_dimension``.

    Preserves aspect ratio. Screen grabs are never upscaled.
    """
    h, w = image.shape[:2]
    largest = max(h, w)
    if largest <= max_dimension:
        return image
    scale = max_dimension / largest
    new_w = max(1, int(w * scale))
    new_h = max(1, int(h * scale))
    return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)


def encode_jpeg(image: np.ndarray, quality: int = 60) -> bytes:
    """Encode a BGR numpy image as JPEG bytes."""
    success, buffer = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not success:
        raise ValueError("Failed to encode image to JPEG")
    return buffer.tobytes()


def downscale_jpeg(jpeg: bytes, width: int, quality: int = 50) -> bytes:
    """Re-encode a JPEG at ``width`` pixels wide, keeping aspect ratio.

    Used for the low-bandwidth video stream of a realtime session.
    """
    with Image.open(io.BytesIO(jpeg)) as image:
        image = image.convert("RGB")
        if image.width > width:
            height = max(1, round(image.height * width / image.width))
            image = image.resize((width, height), Image.Resampling.BILINEAR)
        out = io.BytesIO()
        image.save(out, format="JPEG", quality=quality)
    return out.getvalue()
