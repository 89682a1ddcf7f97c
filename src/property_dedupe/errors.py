"""Exception types raised by the detection engine."""


class DedupeError(Exception):
    """Base class for property-dedupe errors."""


class InvalidConfigError(DedupeError, ValueError):
    """Raised when a configuration update fails validation.

    The detector keeps its previous configuration when this is raised.
    """


class InvalidInputError(DedupeError):
    """Raised when the input record set cannot be read or enumerated."""


class OracleResponseError(DedupeError):
    """Raised when the deep-analysis oracle returns unusable data."""
