"""
Heuristic Leaf Analysis Module
Deterministic pixel-statistics scoring used when the learned model is unavailable
"""

import logging
from typing import NamedTuple, Dict

import numpy as np

from .results import (
    ValidationResult, METHOD_HEURISTIC, MSG_FALLBACK_DETECTED, MSG_NOT_LEAF
)

logger = logging.getLogger(__name__)

HEURISTIC_WEIGHTS = {
    'green': 0.4,
    'edge': 0.3,
    'aspect': 0.2,
    'variance': 0.1,
}

GREEN_BRIGHTNESS_FLOOR = 80
EDGE_GRADIENT_THRESHOLD = 30
# Edge count that saturates the score, as a fraction of all pixels
EDGE_SATURATION_FRACTION = 0.1
# Exclusive bounds: a 3:2 ratio scores on the linear slope, not 1.0
ASPECT_RANGE = (1.5, 4.0)
ASPECT_PEAK = 2.5

ACCEPT_THRESHOLD = 0.6
ACCEPT_CONFIDENCE_RANGE = (0.6, 0.85)


class LeafFeatures(NamedTuple):
    """Normalized feature scores, each in [0, 1]"""

    green_ratio: float
    edge_density: float
    aspect_ratio_score: float
    color_variance: float

    def to_dict(self) -> Dict[str, float]:
        return {name: float(value) for name, value in self._asdict().items()}


def green_ratio_score(image: np.ndarray) -> float:
    """Fraction of green-dominant pixels, doubled and capped at 1"""
    pixels = image.astype(np.int16)
    r, g, b = pixels[:, :, 0], pixels[:, :, 1], pixels[:, :, 2]
    green = (g > r) & (g > b) & (g > GREEN_BRIGHTNESS_FLOOR)
    ratio = float(np.count_nonzero(green)) / green.size
    return min(1.0, ratio * 2)


def edge_density_score(image: np.ndarray) -> float:
    """Share of interior pixels with a strong right or bottom intensity step"""
    height, width = image.shape[:2]
    if height < 3 or width < 3:
        return 0.0

    intensity = image.astype(np.float32).sum(axis=2) / 3.0
    current = intensity[1:-1, 1:-1]
    right = intensity[1:-1, 2:]
    bottom = intensity[2:, 1:-1]

    edges = ((np.abs(current - right) > EDGE_GRADIENT_THRESHOLD) |
             (np.abs(current - bottom) > EDGE_GRADIENT_THRESHOLD))
    edge_count = int(np.count_nonzero(edges))
    return min(1.0, edge_count / (width * height * EDGE_SATURATION_FRACTION))


def aspect_ratio_score(width: int, height: int) -> float:
    """1.0 for elongated shapes, decaying linearly away from a 2.5:1 ratio"""
    if width <= 0 or height <= 0:
        return 0.0
    ratio = max(width, height) / min(width, height)
    low, high = ASPECT_RANGE
    if low < ratio < high:
        return 1.0
    return max(0.0, 1 - abs(ratio - ASPECT_PEAK) / ASPECT_PEAK)


def color_variance_score(image: np.ndarray) -> float:
    """RGB standard deviation around the channel means, scaled to [0, 1]"""
    pixels = image.reshape(-1, 3).astype(np.float64)
    variance = np.sqrt(pixels.var(axis=0).mean()) / 255.0
    return min(1.0, float(variance) * 3)


def combine_scores(features: LeafFeatures) -> float:
    """Weighted leaf probability from the four feature scores"""
    return (features.green_ratio * HEURISTIC_WEIGHTS['green'] +
            features.edge_density * HEURISTIC_WEIGHTS['edge'] +
            features.aspect_ratio_score * HEURISTIC_WEIGHTS['aspect'] +
            features.color_variance * HEURISTIC_WEIGHTS['variance'])


class HeuristicLeafAnalyzer:
    """Rule-based leaf validation (backup method)"""

    method = METHOD_HEURISTIC

    def analyze(self, image: np.ndarray) -> LeafFeatures:
        """
        Extract the four heuristic feature scores

        Args:
            image: RGB uint8 image

        Returns:
            LeafFeatures with every score in [0, 1]
        """
        height, width = image.shape[:2]
        return LeafFeatures(
            green_ratio=green_ratio_score(image),
            edge_density=edge_density_score(image),
            aspect_ratio_score=aspect_ratio_score(width, height),
            color_variance=color_variance_score(image),
        )

    def classify_features(self, features: LeafFeatures) -> ValidationResult:
        score = combine_scores(features)
        if score > ACCEPT_THRESHOLD:
            low, high = ACCEPT_CONFIDENCE_RANGE
            return ValidationResult(
                is_leaf=True,
                confidence=min(high, max(low, score)),
                message=MSG_FALLBACK_DETECTED,
                method=self.method,
                features=features.to_dict(),
            )
        return ValidationResult(
            is_leaf=False,
            confidence=1 - score,
            message=MSG_NOT_LEAF,
            method=self.method,
            features=features.to_dict(),
        )

    def classify(self, image: np.ndarray) -> ValidationResult:
        features = self.analyze(image)
        logger.debug(f"Heuristic features: {features.to_dict()}")
        return self.classify_features(features)
