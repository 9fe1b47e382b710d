"""Unified error codes and custom exceptions.

Taxonomy (every concrete error derives from exactly one of these):
  ValidationError       422  malformed input
  AuthorizationError    403  actor not permitted for this action
  ConflictError         409  uniqueness / concurrency invariant would break
  InvalidStateError     422  transition not legal from the current status
  PaymentMismatchError  422  gateway amount disagrees with the agreed amount
  NotFoundError         404  entity does not exist

Error code ranges:
  1xxx: Auth
  2xxx: Offer / Listing
  3xxx: Transaction / Payment
  4xxx: Dispute
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- Taxonomy ---

class ValidationError(AppError):
    def __init__(self, detail: str, code: int = 9003) -> None:
        super().__init__(code, f"Validation failed: {detail}", 422)


class AuthorizationError(AppError):
    def __init__(self, detail: str, code: int = 1002) -> None:
        super().__init__(code, f"Not permitted: {detail}", 403)


class ConflictError(AppError):
    def __init__(self, detail: str, code: int = 9004) -> None:
        super().__init__(code, f"Conflict: {detail}", 409)


class InvalidStateError(AppError):
    """Requested transition is not legal from the current status."""

    def __init__(
        self, entity: str, entity_id: str, attempted: str, current: str, code: int = 9005
    ) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.attempted = attempted
        self.current = current
        super().__init__(
            code,
            f"Cannot {attempted} {entity} {entity_id} while it is {current}",
            422,
        )


class PaymentMismatchError(AppError):
    def __init__(self, transaction_id: str, expected: int, reported: int) -> None:
        self.expected = expected
        self.reported = reported
        super().__init__(
            3003,
            f"Payment amount mismatch on transaction {transaction_id}: "
            f"expected {expected}, reported {reported}",
            422,
        )


class NotFoundError(AppError):
    def __init__(self, entity: str, entity_id: str, code: int = 9006) -> None:
        super().__init__(code, f"{entity} not found: {entity_id}", 404)


# --- 1xxx: Auth ---

class InvalidTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401)


# --- 2xxx: Offer / Listing ---

class InvalidAmountError(ValidationError):
    def __init__(self, amount: int) -> None:
        super().__init__(f"amount must be positive, got {amount}", code=2001)


class SelfOfferError(ValidationError):
    def __init__(self) -> None:
        super().__init__("cannot make an offer on your own listing", code=2002)


class ListingUnavailableError(ConflictError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(f"listing {listing_id} is not available", code=2003)


class DuplicateActiveOfferError(ConflictError):
    def __init__(self, listing_id: str, buyer_id: str) -> None:
        super().__init__(
            f"buyer {buyer_id} already has a pending offer on listing {listing_id}",
            code=2004,
        )


class OfferNotFoundError(NotFoundError):
    def __init__(self, offer_id: str) -> None:
        super().__init__("Offer", offer_id, code=2005)


class ListingNotFoundError(NotFoundError):
    def __init__(self, listing_id: str) -> None:
        super().__init__("Listing", listing_id, code=2006)


class OfferExpiredError(InvalidStateError):
    def __init__(self, offer_id: str, attempted: str) -> None:
        super().__init__("offer", offer_id, attempted, "EXPIRED", code=2007)


# --- 3xxx: Transaction / Payment ---

class TransactionNotFoundError(NotFoundError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__("Transaction", transaction_id, code=3001)


class ActiveTransactionExistsError(ConflictError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(
            f"listing {listing_id} already has an active transaction", code=3002
        )


class ProviderRefConflictError(ConflictError):
    def __init__(self, provider_ref: str) -> None:
        super().__init__(
            f"provider reference {provider_ref} belongs to another payment", code=3004
        )


# --- 4xxx: Dispute ---

class DisputeNotFoundError(NotFoundError):
    def __init__(self, dispute_id: str) -> None:
        super().__init__("Dispute", dispute_id, code=4001)


class ActiveDisputeExistsError(ConflictError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__(
            f"transaction {transaction_id} already has an open dispute", code=4002
        )


class DisputeNotAllowedError(ConflictError):
    def __init__(self, transaction_id: str, status: str) -> None:
        super().__init__(
            f"transaction {transaction_id} cannot be disputed while it is {status}",
            code=4003,
        )


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
