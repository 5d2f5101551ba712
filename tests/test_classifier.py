"""Tests for the Response Classifier."""

import pytest

from keyprobe.classifier import (
    Operation,
    OutcomeKind,
    RateLimitKind,
    UpstreamOutcome,
    classify,
    classify_for,
    is_quota_message,
    provider_message,
    render_error,
    unreachable_response,
    FORBIDDEN_MESSAGE,
    INVALID_KEY_MESSAGE,
    QUOTA_MESSAGE,
    RATE_LIMIT_MESSAGE,
    UNREACHABLE_MESSAGE,
)


def test_provider_message_fallbacks():
    """Test message, then code, then the default."""
    assert provider_message({"error": {"message": "bad", "code": "x"}}) == "bad"
    assert provider_message({"error": {"message": "", "code": "server_error"}}) == "server_error"
    assert provider_message({"error": {}}) == "Unknown error occurred"
    assert provider_message(None) == "Unknown error occurred"
    assert provider_message(["not", "a", "dict"]) == "Unknown error occurred"
    assert provider_message({"error": "just a string"}, "fallback") == "fallback"


@pytest.mark.parametrize("message", [
    "You have exceeded your current quota, please check your billing details",
    "insufficient_quota",
    "Billing hard limit reached",
    "QUOTA gone",
])
def test_quota_messages(message):
    assert is_quota_message(message) is True


@pytest.mark.parametrize("message", [
    "Rate limit reached for requests",
    "Rate limit exceeded",
    "",
])
def test_throttle_messages(message):
    assert is_quota_message(message) is False


def test_classify_success():
    """Any 2xx is a success and keeps the payload."""
    outcome = classify(200, {"data": []})
    assert outcome.ok
    assert outcome.payload == {"data": []}

    assert classify(204).kind == OutcomeKind.SUCCESS


def test_classify_client_error():
    outcome = classify(500, {"error": {"message": "The server had an error"}})
    assert outcome.kind == OutcomeKind.CLIENT_ERROR
    assert outcome.status == 500
    assert outcome.provider_message == "The server had an error"


def test_classify_429_chat_variant():
    """The chat variant splits 429 into quota and throttle."""
    quota = classify_for(Operation.CHAT, 429, {
        "error": {"message": "You have exceeded your current quota, please check your billing details"}
    })
    assert quota.kind == OutcomeKind.RATE_LIMITED
    assert quota.rate_limit == RateLimitKind.QUOTA

    throttle = classify_for(Operation.CHAT, 429, {
        "error": {"message": "Rate limit reached for requests"}
    })
    assert throttle.rate_limit == RateLimitKind.THROTTLE

    # No message at all falls back to "Rate limit exceeded"
    bare = classify_for(Operation.CHAT, 429, None)
    assert bare.rate_limit == RateLimitKind.THROTTLE
    assert bare.provider_message == "Rate limit exceeded"


def test_classify_429_key_check_variant():
    """The key check treats every 429 as a plain rate limit."""
    outcome = classify_for(Operation.KEY_CHECK, 429, {
        "error": {"message": "You exceeded your current quota"}
    })
    assert outcome.rate_limit == RateLimitKind.THROTTLE

    response = render_error(outcome, Operation.KEY_CHECK)
    assert response.status_code == 429
    assert response.body["error"] == RATE_LIMIT_MESSAGE


def test_render_401_both_operations():
    for operation in Operation:
        response = render_error(classify_for(operation, 401, {}), operation)
        assert response.status_code == 401
        assert response.body == {"error": INVALID_KEY_MESSAGE, "errorType": "invalid_key"}


def test_render_403_only_on_key_check():
    """403 is a 'forbidden' on the key check and a generic error on chat."""
    body = {"error": {"message": "Project does not have access"}}

    key_check = render_error(classify_for(Operation.KEY_CHECK, 403, body), Operation.KEY_CHECK)
    assert key_check.status_code == 403
    assert key_check.body["error"] == FORBIDDEN_MESSAGE

    chat = render_error(classify_for(Operation.CHAT, 403, body), Operation.CHAT)
    assert chat.status_code == 403
    assert chat.body == {
        "error": "OpenAI API error: Project does not have access",
        "errorType": "other",
    }


def test_render_quota_and_rate_limit():
    quota = render_error(
        UpstreamOutcome.rate_limited(RateLimitKind.QUOTA, "insufficient_quota"), Operation.CHAT
    )
    assert quota.status_code == 429
    assert quota.body == {"error": QUOTA_MESSAGE, "errorType": "quota_exceeded"}

    throttle = render_error(
        UpstreamOutcome.rate_limited(RateLimitKind.THROTTLE, "slow down"), Operation.CHAT
    )
    assert throttle.body == {"error": RATE_LIMIT_MESSAGE, "errorType": "rate_limit"}


def test_render_other_mirrors_status():
    response = render_error(classify(502, "not json"), Operation.CHAT)
    assert response.status_code == 502
    assert response.body["error"] == "OpenAI API error: Unknown error occurred"
    assert response.error_type == "other"


def test_render_unreachable():
    response = render_error(UpstreamOutcome.unreachable("connection refused"), Operation.KEY_CHECK)
    assert response.status_code == 500
    assert response.body == {"error": UNREACHABLE_MESSAGE}
    assert unreachable_response().body == response.body


def test_render_success_rejected():
    with pytest.raises(ValueError):
        render_error(UpstreamOutcome.success(200), Operation.CHAT)
