"""Error kinds raised by the route engine and its store adapters."""


class RouteEngineError(Exception):
    """Base class for all engine errors."""


class CodecDecodeError(RouteEngineError, ValueError):
    """Compressed coordinate text is malformed."""


class InsufficientPoints(RouteEngineError):
    """Fewer than two points where at least two are required."""


class IndexOutOfRange(RouteEngineError, IndexError):
    """An editor operation addressed a point index that does not exist."""


class EmptyRoute(RouteEngineError):
    """Route decodes to zero points and cannot be animated."""


class DegenerateRoute(EmptyRoute):
    """Route decodes to a single point; progress would be undefined."""


class TripLimitExceeded(RouteEngineError):
    """The scheduler already tracks the maximum number of trips."""


class InvalidSpeed(RouteEngineError, ValueError):
    """Speed multiplier must be a positive number."""


class TripNotFound(RouteEngineError):
    """No trip with the given id is tracked by the scheduler."""


class RouteNotFound(RouteEngineError):
    """The store holds no route with the given id."""


class StoreError(RouteEngineError):
    """Opaque failure reported by the Route Store."""
