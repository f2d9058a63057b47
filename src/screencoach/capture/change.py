"""Frame change detection.

Provides a cheap local check to avoid model calls when the screen has
not changed.
"""

from __future__ import annotations

import cv2
import numpy as np


def has_frame_changed(
    prev_gray: np.ndarray,
    curr_gray: np.ndarray,
    threshold: float = 0.02,
    pixel_delta: int = 25,
) -> bool:
    """Check if enough pixels changed between two grayscale frames.

    Args:
        prev_gray: Previous frame in grayscale.
        curr_gray: Current frame in grayscale.
        threshold: Fraction of pixels that must differ (0.0-1.0).
        pixel_delta: Per-pixel intensity difference that counts as a change.

    Returns:
        True if the frame changed enough to warrant a model call.
    """
    if prev_gray.shape != curr_gray.shape:
        # Resolution or monitor layout changed
        return True
    diff = cv2.absdiff(prev_gray, curr_gray)
    changed = np.count_nonzero(diff > pixel_delta) / diff.size
    return changed > threshold
