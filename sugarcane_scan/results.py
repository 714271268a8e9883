"""
Validation result type returned by every leaf validation path
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Optional

METHOD_MODEL = 'model'
METHOD_HEURISTIC = 'heuristic'
METHOD_UNREADABLE = 'unreadable'

MSG_DETECTED = "Sugarcane leaf detected successfully"
MSG_MODERATE = "Sugarcane leaf detected with moderate confidence"
MSG_FALLBACK_DETECTED = "Sugarcane leaf detected using fallback analysis"
MSG_NOT_LEAF = ("This does not appear to be a sugarcane leaf. "
                "Please capture an image of a sugarcane leaf.")
MSG_UNREADABLE = "Could not read the image. Please capture or upload a valid photo."


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a single image"""

    is_leaf: bool
    confidence: float
    message: str
    method: str = METHOD_MODEL
    features: Optional[Dict[str, float]] = field(default=None, compare=False)

    @classmethod
    def unreadable(cls, detail: str = None) -> 'ValidationResult':
        message = f"{MSG_UNREADABLE} ({detail})" if detail else MSG_UNREADABLE
        return cls(is_leaf=False, confidence=0.0, message=message, method=METHOD_UNREADABLE)

    def to_dict(self) -> dict:
        data = asdict(self)
        if data['features'] is None:
            del data['features']
        return data
