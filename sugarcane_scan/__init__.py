"""
Sugarcane Leaf Scan
Leaf validation engine and scan record service for sugarcane disease scanning
"""

from .errors import (
    ScanError, InputError, ValidationError, NotFoundError, StorageError, ModelLoadError
)
from .diseases import Disease, DiseaseInfo, Severity, DISEASE_INFO, PENDING_ANALYSIS
from .leaf_validator import LeafValidationEngine, ValidationResult, ModelState
from .quality import QualityReport, assess_quality

__version__ = "0.1.0"

__all__ = [
    'ScanError', 'InputError', 'ValidationError', 'NotFoundError', 'StorageError',
    'ModelLoadError', 'Disease', 'DiseaseInfo', 'Severity', 'DISEASE_INFO',
    'PENDING_ANALYSIS', 'LeafValidationEngine', 'ValidationResult', 'ModelState',
    'QualityReport', 'assess_quality',
]
