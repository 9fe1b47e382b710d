"""Tests for esc_common.errors and esc_common.response."""

from unittest.mock import MagicMock

import pytest

from src.esc_common.errors import (
    ActiveDisputeExistsError,
    ActiveTransactionExistsError,
    AppError,
    AuthorizationError,
    ConflictError,
    DisputeNotAllowedError,
    DuplicateActiveOfferError,
    InvalidAmountError,
    InvalidStateError,
    ListingNotFoundError,
    NotFoundError,
    OfferExpiredError,
    PaymentMismatchError,
    ProviderRefConflictError,
    SelfOfferError,
    TransactionNotFoundError,
    ValidationError,
)
from src.esc_common.response import error_response, success_response


class TestAppError:
    def test_base_error(self) -> None:
        err = AppError(9999, "test error", 500)
        assert err.code == 9999
        assert err.message == "test error"
        assert err.http_status == 500
        assert str(err) == "test error"

    def test_default_http_status(self) -> None:
        assert AppError(1, "x").http_status == 500


class TestTaxonomy:
    @pytest.mark.parametrize(
        ("err", "base", "status"),
        [
            (InvalidAmountError(0), ValidationError, 422),
            (SelfOfferError(), ValidationError, 422),
            (DuplicateActiveOfferError("L1", "B1"), ConflictError, 409),
            (ActiveTransactionExistsError("L1"), ConflictError, 409),
            (ActiveDisputeExistsError("T1"), ConflictError, 409),
            (DisputeNotAllowedError("T1", "CREATED"), ConflictError, 409),
            (ProviderRefConflictError("FND-1"), ConflictError, 409),
            (OfferExpiredError("O1", "accept"), InvalidStateError, 422),
            (ListingNotFoundError("L1"), NotFoundError, 404),
            (TransactionNotFoundError("T1"), NotFoundError, 404),
        ],
    )
    def test_concrete_errors_map_to_one_kind(
        self, err: AppError, base: type[AppError], status: int
    ) -> None:
        assert isinstance(err, base)
        assert err.http_status == status

    def test_authorization_error(self) -> None:
        err = AuthorizationError("accepting an offer requires one of [SELLER]")
        assert err.http_status == 403
        assert "SELLER" in err.message

    def test_invalid_state_carries_context(self) -> None:
        err = InvalidStateError("transaction", "T1", "requestEscrow", "FUNDED")
        assert err.entity == "transaction"
        assert err.attempted == "requestEscrow"
        assert err.current == "FUNDED"
        assert err.message == "Cannot requestEscrow transaction T1 while it is FUNDED"

    def test_offer_expired_reports_expired_status(self) -> None:
        err = OfferExpiredError("O1", "accept")
        assert err.code == 2007
        assert err.current == "EXPIRED"

    def test_payment_mismatch(self) -> None:
        err = PaymentMismatchError("T1", expected=5_000_000, reported=4_999_999)
        assert err.code == 3003
        assert err.http_status == 422
        assert err.expected == 5_000_000
        assert err.reported == 4_999_999


class TestApiResponse:
    def test_success(self) -> None:
        resp = success_response({"id": "abc"})
        assert resp.code == 0
        assert resp.message == "success"
        assert resp.data == {"id": "abc"}

    def test_error_keeps_request_id(self) -> None:
        request = MagicMock()
        request.state.request_id = "gw-123"
        assert error_response(2004, "Conflict", request).request_id == "gw-123"

    def test_error(self) -> None:
        resp = error_response(2004, "Conflict: duplicate offer")
        assert resp.code == 2004
        assert resp.data is None

    def test_serialization(self) -> None:
        d = success_response({"amount_minor": 5_000_000}).model_dump()
        assert set(d) == {"code", "message", "data", "timestamp", "request_id"}
