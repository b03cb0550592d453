"""study-pulse: longitudinal assessment and safety engine."""

__version__ = "0.1.0"
