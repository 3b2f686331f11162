"""Enumerations for workout logging."""

from enum import Enum


class Intensity(Enum):
    """Perceived effort of a set. Values are the backend's wire strings."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
