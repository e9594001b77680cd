"""Push-token deduplication.

A user may register the same physical device more than once, and stale
device records linger, so tokens are never assumed unique in storage.
Deduplication keys on the literal token string and keeps first-occurrence
order so repeated runs over the same input give the same target sequence.
"""

import logging
from typing import Iterable, Optional, Union

from src.notifications.config import EXPO_TOKEN_PREFIX
from src.notifications.models import DedupResult, DeviceRecord

logger = logging.getLogger(__name__)


def is_eligible_token(token: object, prefix: str = EXPO_TOKEN_PREFIX) -> bool:
    """Check a token has the provider shape ``<prefix><body>]``."""
    if not isinstance(token, str):
        return False
    if not token.startswith(prefix) or not token.endswith("]"):
        return False
    return len(token) > len(prefix) + 1


def dedupe_tokens(
    items: Iterable[Union[DeviceRecord, str, None]],
    prefix: str = EXPO_TOKEN_PREFIX,
) -> DedupResult:
    """Derive the ordered unique set of eligible push targets.

    Args:
        items: Device records or raw token strings, in storage order.
        prefix: Provider token prefix a token must start with.

    Returns:
        DedupResult with the unique tokens in first-seen order, the count of
        eligible tokens including duplicates, and per-token duplicate counts.
        Malformed or missing tokens are dropped and not counted as eligible.
    """
    first_seen: dict[str, int] = {}
    duplicates: dict[str, int] = {}
    total_eligible = 0
    malformed = 0

    for item in items:
        token: Optional[str] = item.push_token if isinstance(item, DeviceRecord) else item
        if not is_eligible_token(token, prefix):
            malformed += 1
            logger.debug("Skipping malformed push token %r", token)
            continue

        total_eligible += 1
        if token in first_seen:
            duplicates[token] = duplicates.get(token, 0) + 1
        else:
            first_seen[token] = total_eligible - 1

    return DedupResult(
        tokens=tuple(first_seen),
        total_eligible=total_eligible,
        malformed=malformed,
        duplicates=duplicates,
    )
