"""
Error conditions surfaced to callers of the adaptation engine and resolver.
Numeric degeneracy and out-of-range coefficients are recovered locally and
never raised.
"""


class InvalidInput(ValueError):
    """A required input is missing or malformed and cannot be defaulted."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field
