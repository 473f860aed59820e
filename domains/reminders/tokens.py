"""Device token registration and invalid-token pruning."""

from typing import Iterable

from logger import logger
from utils.log_sanitizer import mask_token, mask_tokens
from .store import DocumentStore
from .types import BatchResult, TokenResult


def collect_invalid_tokens(results: BatchResult | Iterable[TokenResult]) -> list[str]:
    """Tokens the gateway reported as permanently invalid, deduplicated.

    Transient failures (timeouts, quota, server errors) are not included;
    those tokens are retried on the next delivery.
    """
    if isinstance(results, BatchResult):
        results = results.results
    invalid = []
    for result in results:
        if not result.success and result.permanent and result.token not in invalid:
            invalid.append(result.token)
    return invalid


async def prune_invalid_tokens(
    store: DocumentStore,
    user_id: str,
    results: BatchResult | Iterable[TokenResult],
) -> list[str]:
    """Remove permanently invalid tokens from a user's set in one update.

    Best effort: a failed removal is logged and the tokens stay registered
    until the next delivery reports them again.

    Returns:
        Tokens that were removed (empty if none or on failure)
    """
    invalid = collect_invalid_tokens(results)
    if not invalid:
        return []

    try:
        await store.remove_tokens(user_id, invalid)
    except Exception as e:
        logger.error(f"Failed to prune {len(invalid)} invalid token(s) for user {user_id}: {e}")
        return []

    logger.info(f"Removed {len(invalid)} invalid token(s) for user {user_id}: {mask_tokens(invalid)}")
    return invalid


async def register_token(store: DocumentStore, user_id: str, token: str) -> bool:
    """Add a device token to a user's set. Re-registering is a no-op.

    Returns:
        True if stored successfully
    """
    if not token or not token.strip():
        logger.warning(f"Ignoring empty device token for user {user_id}")
        return False
    try:
        await store.add_tokens(user_id, [token.strip()])
    except Exception as e:
        logger.error(f"Failed to register token for user {user_id}: {e}")
        return False
    logger.info(f"Device token {mask_token(token)} registered for user {user_id}")
    return True


async def unregister_token(store: DocumentStore, user_id: str, token: str) -> bool:
    """Remove a device token from a user's set. Unknown tokens are a no-op."""
    if not token:
        return False
    try:
        await store.remove_tokens(user_id, [token])
    except Exception as e:
        logger.error(f"Failed to unregister token for user {user_id}: {e}")
        return False
    logger.info(f"Device token {mask_token(token)} unregistered for user {user_id}")
    return True
