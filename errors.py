from typing import Optional


class CartAnalysisError(Exception):
    """Base class for failures that abort a cart analysis."""


class InvalidCartData(CartAnalysisError):
    """The cart snapshot is missing or its line items are malformed."""


class CollaboratorFailure(CartAnalysisError):
    """A call to the commerce platform failed or returned an unexpected body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
