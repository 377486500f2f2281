class NurbsError(Exception):
    """Base class for the errors raised by nurbskit."""

    pass


class ConfigurationError(NurbsError, ValueError):
    """Raised for inconsistent degree, control points, weights or knots."""

    pass


class DomainError(NurbsError, ValueError):
    """Raised when a parameter cannot be mapped into the curve domain."""

    pass
