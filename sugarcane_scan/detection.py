"""
Disease detection contract and the simulated detector used by the scan client
"""

import random
from typing import NamedTuple, Optional

from .diseases import Disease, DISEASE_INFO


class DetectionResult(NamedTuple):
    disease: Disease
    confidence: float

    @property
    def recommendations(self) -> str:
        return DISEASE_INFO[self.disease].treatment

    def to_dict(self) -> dict:
        return {
            'disease': self.disease.value,
            'confidence': self.confidence,
            'recommendations': self.recommendations,
        }


class DiseaseDetector:
    """Anything that maps an image to a disease label and confidence"""

    def detect(self, image) -> DetectionResult:
        raise NotImplementedError


class SimulatedDiseaseDetector(DiseaseDetector):
    """Stand-in for a real disease model: uniform label, confidence in [0.7, 1.0)"""

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def detect(self, image) -> DetectionResult:
        disease = self._random.choice(list(Disease))
        confidence = self._random.random() * 0.3 + 0.7
        return DetectionResult(disease, confidence)
