"""
Pipeline error taxonomy.

Workers catch these per lead; anything else escaping a lead is treated as a
hard failure for that lead only.
"""


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class ValidationError(PipelineError):
    """Malformed trigger message, job descriptor or filter rule."""


class NotFoundError(PipelineError):
    """A referenced lead or task does not exist."""


class ThrottleError(PipelineError):
    """The inference endpoint rate-limited the request."""


class ParseError(PipelineError):
    """Model output could not be parsed as a JSON object."""

    def __init__(self, message, raw_text=''):
        super().__init__(message)
        self.raw_text = raw_text


class LaunchError(PipelineError):
    """The container launcher could not start a worker."""

    def __init__(self, message, failures=None):
        super().__init__(message)
        self.failures = failures or []


class PersistenceError(PipelineError):
    """A relational or object-store read/write failed."""
