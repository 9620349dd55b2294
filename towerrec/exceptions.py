"""
Exception types shared across the two-tower demo.
Loading, training and testing each fail with their own error so the session can
report them as status messages without guessing at the cause.
"""


class TowerRecError(Exception):
    """Base class for all errors raised by this package."""


class DataFormatError(TowerRecError, ValueError):
    """A MovieLens source line could not be parsed."""

    def __init__(self, source, line_number, message):
        self.source = source
        self.line_number = line_number
        super().__init__(f"{source} line {line_number}: {message}")


class DataLoadError(TowerRecError):
    """Loading the dataset failed as a whole."""


class NotReadyError(TowerRecError):
    """An operation was requested before its preconditions were met."""


class TrainingInProgressError(TowerRecError):
    """A training run was started while another one is still active."""
