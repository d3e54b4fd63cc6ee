"""Exceptions raised by the scheduling core."""


class SchedulingValidationError(ValueError):
    """Raised when scheduling input is outside its documented range."""
