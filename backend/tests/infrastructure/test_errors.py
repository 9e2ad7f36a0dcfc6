"""Error Hierarchy - verifies codes, HTTP statuses and the response envelope."""

from storefront.core.errors import (
    AuthenticationRequiredError, CouponRejectedError, DatabaseError,
    DuplicateResourceError, ErrorCategory, PaymentGatewayError, PermissionDeniedError,
    RateLimitedError, ResourceNotFoundError, StorefrontError,
)


def test_envelope_shape():
    err = ResourceNotFoundError("Product", "abc")
    body = err.to_response()["error"]
    assert body["code"] == "RESOURCE_NOT_FOUND"
    assert body["category"] == ErrorCategory.RESOURCE_NOT_FOUND.value
    assert body["severity"]
    assert body["timestamp"]
    assert set(body["context"]) == {
        "user_id", "order_id", "resource_id", "retry_after_seconds",
    }
    assert err.http_status == 404


def test_status_codes():
    assert AuthenticationRequiredError().http_status == 401
    assert PermissionDeniedError().http_status == 403
    assert DuplicateResourceError("User", "email", "a@b.c").http_status == 409
    assert RateLimitedError("slow down", 30).http_status == 429
    assert DatabaseError("boom", "commit").http_status == 503
    assert PaymentGatewayError("down", "connection_error").http_status == 502


def test_coupon_rejection_status_is_configurable():
    assert CouponRejectedError("x", "COUPON_NOT_FOUND", http_status=404).http_status == 404
    assert CouponRejectedError("x", "COUPON_EXHAUSTED").http_status == 400


def test_details_only_present_when_given():
    assert "details" not in AuthenticationRequiredError().to_response()["error"]
    err = DuplicateResourceError("User", "email", "a@b.c")
    assert isinstance(err, StorefrontError)


def test_rate_limited_carries_retry_after():
    err = RateLimitedError("slow down", 42)
    assert err.to_response()["error"]["context"]["retry_after_seconds"] == 42
