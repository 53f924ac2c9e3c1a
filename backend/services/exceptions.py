"""Custom exceptions for pricing, dispatch and order management."""


class InvalidInputError(Exception):
    """Raised when request data is malformed; nothing has been written."""
    pass


class InvalidDistanceError(InvalidInputError):
    """Raised when a distance is negative, NaN, infinite or not a number."""
    pass


class ImplausibleLocationError(InvalidInputError):
    """Raised when a location update implies an impossible movement."""
    pass


class AddressNotFoundError(InvalidInputError):
    """Raised when the maps provider cannot geocode an address."""
    pass


class RouteNotFoundError(InvalidInputError):
    """Raised when the maps provider finds no driving route."""
    pass


class UpstreamUnavailableError(Exception):
    """Raised when a third-party provider fails; the caller may retry."""
    pass


class OrderNotFoundError(Exception):
    """Raised when an order cannot be found."""
    pass


class OrderForbiddenError(Exception):
    """Raised when the caller is not allowed to act on an order."""
    pass


class InvalidTransitionError(Exception):
    """Raised when an order cannot move from its current status to the requested one."""
    pass


class OfferNotFoundError(Exception):
    """Raised when an order offer cannot be found."""
    pass


class OfferForbiddenError(Exception):
    """Raised when a delivery person responds to an offer made to someone else."""
    pass


class OfferAlreadyResolvedError(Exception):
    """Raised when an offer was already accepted, rejected or has expired."""
    pass
