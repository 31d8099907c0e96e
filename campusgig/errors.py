"""Error taxonomy for marketplace operations.

Services raise these; the API layer turns them into JSON bodies of the form
``{"error": code, "detail": reason, "retryable": bool}`` (see ``campusgig.main``).
The ``detail`` string is meant to be shown to the user as-is.
"""


class MarketplaceError(Exception):
    status_code: int = 400
    code: str = "error"
    retryable: bool = False

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail, "retryable": self.retryable}


class Unauthenticated(MarketplaceError):
    status_code = 401
    code = "unauthenticated"


class Unauthorized(MarketplaceError):
    status_code = 403
    code = "unauthorized"


class NotFound(MarketplaceError):
    status_code = 404
    code = "not_found"


class InvalidTransition(MarketplaceError):
    status_code = 409
    code = "invalid_transition"


class ValidationError(MarketplaceError):
    status_code = 422
    code = "validation_error"


class AlreadyExists(MarketplaceError):
    status_code = 409
    code = "already_exists"


class AlreadyRated(AlreadyExists):
    code = "already_rated"


class TransientStoreError(MarketplaceError):
    """The backing store or event relay failed for infrastructure reasons. Safe to retry."""

    status_code = 503
    code = "transient_store_error"
    retryable = True
