"""
Exceptions raised by the route matching engine.
"""


class RouteMatchingError(Exception):
    """Base class for inputs the matching engine declines to evaluate."""
    pass


class InvalidGeometryError(RouteMatchingError, ValueError):
    """Raised for out-of-range coordinates or polylines with fewer than 2 points."""
    pass


class IncompleteQueryError(RouteMatchingError, ValueError):
    """Raised when a match query is missing the passenger source or destination."""
    pass
