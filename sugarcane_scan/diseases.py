"""
Disease vocabulary and static treatment reference table
"""

from enum import Enum
from types import MappingProxyType
from typing import NamedTuple

# Sentinel stored in disease_detected between upload and analysis
PENDING_ANALYSIS = "pending_analysis"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Disease(str, Enum):
    """Closed set of labels the disease detector can emit"""

    RED_ROT = "red_rot"
    SMUT = "smut"
    RUST = "rust"
    MOSAIC = "mosaic"
    HEALTHY = "healthy"


class DiseaseInfo(NamedTuple):
    name: str
    treatment: str
    severity: Severity

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'treatment': self.treatment,
            'severity': self.severity.value,
        }


DISEASE_INFO = MappingProxyType({
    Disease.RED_ROT: DiseaseInfo(
        name="Red Rot",
        treatment=("Apply Bordeaux mixture (1%) or Copper oxychloride (0.3%). "
                   "Remove infected stalks and burn them. Improve drainage and avoid waterlogging."),
        severity=Severity.HIGH,
    ),
    Disease.SMUT: DiseaseInfo(
        name="Smut Disease",
        treatment=("Use resistant varieties. Apply systemic fungicides like Propiconazole. "
                   "Remove and destroy infected plants immediately."),
        severity=Severity.HIGH,
    ),
    Disease.RUST: DiseaseInfo(
        name="Rust Disease",
        treatment=("Spray Mancozeb (0.25%) or Propiconazole (0.1%). "
                   "Ensure proper spacing between plants for air circulation."),
        severity=Severity.MEDIUM,
    ),
    Disease.MOSAIC: DiseaseInfo(
        name="Mosaic Virus",
        treatment=("No chemical cure available. Remove infected plants immediately. "
                   "Control aphid vectors with insecticides. Use virus-free planting material."),
        severity=Severity.HIGH,
    ),
    Disease.HEALTHY: DiseaseInfo(
        name="Healthy Leaf",
        treatment=("Continue regular monitoring and maintain good agricultural practices. "
                   "Ensure proper nutrition and irrigation."),
        severity=Severity.LOW,
    ),
})
