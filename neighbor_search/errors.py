"""
Typed failures raised by the neighbor search engine.
"""


class NeighborSearchError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(NeighborSearchError, ValueError):
    """
    Invalid search configuration.

    Raised before any distance is evaluated: bad ``k``, mismatched
    dimensionality, bad leaf size, unsupported metric/bound pairing,
    or use of a closed engine.
    """


class PreconditionViolation(NeighborSearchError):
    """A supplied tree cannot be used in the requested search mode."""
