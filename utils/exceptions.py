"""
Custom exception hierarchy for the relative-volatility model selection pipeline.

Every fatal error names the stage that raised it and, where one exists,
the identifying key (fold id, configuration id or dataset size).
"""

from typing import Any, Optional


class RelVolMLException(Exception):
    """Base exception for all system errors."""

    def __init__(self, message: str, stage: Optional[str] = None, key: Any = None):
        super().__init__(message)
        self.stage = stage
        self.key = key

    def __str__(self):
        message = super().__str__()
        if self.stage is None:
            return message
        if self.key is None:
            return f"[{self.stage}] {message}"
        return f"[{self.stage}] {message} (key={self.key})"


class ConfigurationError(RelVolMLException):
    """Configuration or hyperparameter range validation failed."""
    pass


class DataValidationError(RelVolMLException):
    """Data validation failed."""
    pass


class SplittingError(RelVolMLException):
    """No usable folds could be produced."""
    pass


class ModelTrainingError(RelVolMLException):
    """Model construction or training failed."""
    pass


class SelectionError(RelVolMLException):
    """No configuration produced a usable score."""
    pass


class FinalEvaluationError(RelVolMLException):
    """Refit on the full training set or scoring on the test set failed."""
    pass
