"""
Key Validator and Chat Prober

Each operation validates the key, makes exactly one upstream call and
returns exactly one ProxyResponse. No exception escapes to the router.
"""

import logging
from typing import Any

from .classifier import (
    KEY_VALID_MESSAGE,
    Operation,
    ProxyResponse,
    UpstreamOutcome,
    classify_for,
    render_error,
)
from .credentials import CredentialError, validate_credential, key_preview
from .upstream import OpenAIClient, UpstreamUnavailable

NO_RESPONSE = "No response"

default_logger = logging.getLogger("keyprobe.service")


def completion_text(payload: Any) -> str:
    """Text of the first completion choice, or ``"No response"``."""
    if not isinstance(payload, dict):
        return NO_RESPONSE
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return NO_RESPONSE
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content:
        return NO_RESPONSE
    return content


def _rejected(error: CredentialError, operation: Operation, logger: logging.Logger) -> ProxyResponse:
    logger.info(
        "credential rejected",
        extra={"operation": operation.value, "reason": error.__class__.__name__},
    )
    return ProxyResponse(status_code=error.status_code, body={"error": error.error})


def _failed(outcome: UpstreamOutcome, operation: Operation, logger: logging.Logger) -> ProxyResponse:
    response = render_error(outcome, operation)
    logger.warning(
        "upstream call failed",
        extra={
            "operation": operation.value,
            "upstream_status": outcome.status,
            "outcome": outcome.kind.value,
            "error_type": response.error_type,
            "detail": outcome.provider_message or outcome.cause,
        },
    )
    return response


async def check_key(credential: Any, client: OpenAIClient, logger: logging.Logger = None) -> ProxyResponse:
    """Confirm the key is accepted by the model-listing endpoint."""
    logger = logger or default_logger
    operation = Operation.KEY_CHECK

    try:
        key = validate_credential(credential)
    except CredentialError as e:
        return _rejected(e, operation, logger)

    logger.info("checking key", extra={"operation": operation.value, "key": key_preview(key)})

    try:
        reply = await client.list_models(key)
    except UpstreamUnavailable as e:
        return _failed(UpstreamOutcome.unreachable(e.cause), operation, logger)

    # Any 2xx is enough; the model list itself is not inspected
    outcome = classify_for(operation, reply.status_code, reply.body)
    if not outcome.ok:
        return _failed(outcome, operation, logger)

    logger.info("key valid", extra={"operation": operation.value, "upstream_status": reply.status_code})
    return ProxyResponse(status_code=200, body={"message": KEY_VALID_MESSAGE, "valid": True})


async def probe_chat(credential: Any, client: OpenAIClient, logger: logging.Logger = None) -> ProxyResponse:
    """Send the fixed chat prompt and return the generated text."""
    logger = logger or default_logger
    operation = Operation.CHAT

    try:
        key = validate_credential(credential)
    except CredentialError as e:
        return _rejected(e, operation, logger)

    logger.info("sending chat completion", extra={"operation": operation.value, "key": key_preview(key)})

    try:
        reply = await client.create_chat_completion(key)
    except UpstreamUnavailable as e:
        return _failed(UpstreamOutcome.unreachable(e.cause), operation, logger)

    outcome = classify_for(operation, reply.status_code, reply.body)
    if not outcome.ok:
        return _failed(outcome, operation, logger)

    if not reply.body_valid:
        return _failed(UpstreamOutcome.unreachable("malformed response body"), operation, logger)

    text = completion_text(outcome.payload)
    logger.info(
        "chat completion succeeded",
        extra={"operation": operation.value, "preview": text[:100]},
    )
    return ProxyResponse(status_code=200, body={"message": text, "success": True})
