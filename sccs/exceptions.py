"""Exception types raised by the SCCS engine."""


class SCCSError(Exception):
    """Base class for all SCCS errors."""
    pass


class InvalidParameterError(SCCSError, ValueError):
    """Raised when a parameter (word size, alphabet, option value) is invalid."""
    pass


class InvalidWordSizeError(InvalidParameterError):
    """Raised when a word size is not a positive integer or exceeds the sequence length."""
    pass


class EmptyInputError(SCCSError, ValueError):
    """Raised when an operation is asked to work on an empty collection."""
    pass


class MissingAnnotationError(SCCSError):
    """Raised when a required context size annotation is absent and cannot be recovered."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"No '#=GF CTXSZ' context size annotation found in {path}. "
            "Compute and store one with save_hit_context_delta() or pass --delta explicitly."
        )
