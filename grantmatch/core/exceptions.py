"""
Custom Exception Classes for GrantMatch.

Errors meaning "the AI step could not render an opinion" are absorbed by the
matching pipeline; errors meaning "we cannot know what grants exist" are
propagated to the caller.
"""


class GrantMatchError(Exception):
    """Base class for all GrantMatch errors."""


class GrantFetchError(GrantMatchError):
    """Raised when candidate grants cannot be read from storage."""

    def __init__(self, message: str = "Could not load grants. Please try again."):
        super().__init__(message)


class CompletionNotConfiguredError(GrantMatchError):
    """Raised when no completion-service credentials are configured."""


class CompletionError(GrantMatchError):
    """Raised when the text-completion service fails."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class ResponseShapeError(CompletionError):
    """Raised when the completion service returns JSON of an unrecognized shape."""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)
