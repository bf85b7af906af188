"""
Exception hierarchy for retrace.

Only the two RecreateError subclasses are fatal for a reconstruction call.
Step application reports expected failures through StepResult instead of
raising, and simplification failures are absorbed by the simplifier.
"""


class RetraceError(Exception):
    """Base class for every error raised by retrace."""


class SchemaError(RetraceError):
    """Malformed grammar definition, or node JSON the grammar rejects."""


class PositionError(RetraceError):
    """A document position lies outside the node it is resolved against."""


class ReplaceError(RetraceError):
    """A replace cannot produce a document that satisfies the grammar."""


class TransformError(RetraceError):
    """A step failed when applied through Transform.step."""


class RecreateError(RetraceError):
    """Base class for fatal reconstruction failures."""


class NoValidDiffError(RecreateError):
    """Patch batching ran out of ops before reaching a valid document."""


class NoValidOperationError(RecreateError):
    """A computed step could not be applied to the working document."""
