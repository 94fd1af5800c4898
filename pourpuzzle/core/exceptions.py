"""Custom exception hierarchy for puzzle solving and generation."""


class PourPuzzleError(Exception):
    """Base exception for pour puzzle failures."""


class ConfigError(PourPuzzleError):
    """Raised when puzzle parameters or generator options are out of range."""


class IllegalMoveError(PourPuzzleError):
    """Raised when a move is applied that the current state does not allow."""


class TemplateError(PourPuzzleError):
    """Raised when an auto template request cannot be satisfied."""


class RecordDecodeError(PourPuzzleError):
    """Raised when a persisted puzzle row cannot be parsed."""


class GenerationError(PourPuzzleError):
    """Raised when a candidate is rejected or no solvable one is found."""


class ValidationError(PourPuzzleError):
    """Raised when the puzzle integrity checks fail."""
