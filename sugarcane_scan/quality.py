"""
Advisory image quality checks run before leaf validation
"""

from typing import List, NamedTuple

import numpy as np

from .errors import InputError
from .preprocessing import ImagePreprocessor

MIN_BRIGHTNESS = 50
MAX_BRIGHTNESS = 200
MIN_DIMENSION = 200

MSG_TOO_DARK = "Image appears too dark. Try better lighting."
MSG_OVEREXPOSED = "Image appears overexposed. Reduce direct lighting."
MSG_LOW_RESOLUTION = "Image resolution is too low. Move closer to the leaf."
MSG_GOOD_QUALITY = "Image quality is good for analysis."
MSG_UNREADABLE = "Image could not be read. Please capture or upload a valid photo."


class QualityReport(NamedTuple):
    acceptable: bool
    suggestions: List[str]

    def to_dict(self) -> dict:
        return {'acceptable': self.acceptable, 'suggestions': list(self.suggestions)}


def mean_brightness(image: np.ndarray) -> float:
    """Average of (r + g + b) / 3 over all pixels"""
    return float(image.astype(np.float64).mean())


def assess_quality(image, preprocessor: ImagePreprocessor = None) -> QualityReport:
    """
    Flag images that are too dark, overexposed or too small.

    Does not block validation; callers show the suggestions to the user.
    """
    preprocessor = preprocessor or ImagePreprocessor()
    try:
        rgb = preprocessor.load_image(image)
    except InputError:
        return QualityReport(False, [MSG_UNREADABLE])

    suggestions = []
    brightness = mean_brightness(rgb)
    if brightness < MIN_BRIGHTNESS:
        suggestions.append(MSG_TOO_DARK)
    if brightness > MAX_BRIGHTNESS:
        suggestions.append(MSG_OVEREXPOSED)

    height, width = rgb.shape[:2]
    if width < MIN_DIMENSION or height < MIN_DIMENSION:
        suggestions.append(MSG_LOW_RESOLUTION)

    if suggestions:
        return QualityReport(False, suggestions)
    return QualityReport(True, [MSG_GOOD_QUALITY])
