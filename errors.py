# errors.py

"""
Exception types raised while validating the inputs of a SEIR fit.

Every class derives from `SeirInputError`, itself a `ValueError`, so callers
can catch all input problems at once. Failures raised by the Stan engine are
never wrapped in these types.
"""


class SeirInputError(ValueError):
    """Base class for all input validation failures."""


class IncompatibleSchemaError(SeirInputError):
    """A named parameter vector does not match its reference schema."""


class DimensionError(SeirInputError):
    """Array shapes that must agree with each other do not."""


class SegmentError(DimensionError):
    """A segment id vector does not start at its documented origin."""


class SentinelCollisionError(SeirInputError):
    """Raw case data contains the value reserved for missing observations."""


class InvalidPriorError(SeirInputError):
    """A prior specification cannot be turned into a proper distribution."""
