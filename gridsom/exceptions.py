"""
Error types raised by the SOM engine and its persistence layer
"""


class SOMError(Exception):
    """Base class for all gridsom errors"""


class InvalidDimension(SOMError, ValueError):
    """Non-positive lattice shape, empty sample set or iteration count"""


class DimensionMismatch(SOMError, ValueError):
    """A vector whose length differs from the lattice dimensionality"""

    def __init__(self, expected: int, got: int, what: str = "sample"):
        self.expected = expected
        self.got = got
        super().__init__(f"Expected {what} of length {expected}, got {got}")


class UnsupportedFormat(SOMError, ValueError):
    """Persistence requested with an unrecognized format tag"""


class CorruptState(SOMError, ValueError):
    """Persisted snapshot with missing or malformed fields"""


class IndexOutOfRange(SOMError, IndexError):
    """Sample or node index outside the valid range"""
