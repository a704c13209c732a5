# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Verdict reconciliation for revoke/verify cycles."""

import logging
from collections.abc import Iterator

from revoker.model import (
    HAS_ACCESS,
    NO_ACCESS,
    AccessState,
    Category,
    MutationResult,
    VerificationResult,
)

logger = logging.getLogger(__name__)


def iter_principal_names(payload: object) -> Iterator[str]:
    """Yield principal names from a permissions listing.

    Entries may carry the name directly (``{"name": ...}``) or nested under a
    user object (``{"user": {"name": ...}}``). Anything else is ignored.

    Args:
        payload: Decoded response body.

    Yields:
        Principal names in listing order.
    """
    if not isinstance(payload, dict):
        return
    values = payload.get("values")
    if not isinstance(values, list):
        return
    for entry in values:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        if not name:
            user = entry.get("user")
            name = user.get("name") if isinstance(user, dict) else None
        if isinstance(name, str) and name:
            yield name


def payload_lists_user(payload: object, username: str) -> bool:
    """Check whether a permissions listing still contains the user.

    Args:
        payload: Decoded response body.
        username: Target username.

    Returns:
        True on the first case-insensitive exact name match.
    """
    target = username.casefold()
    return any(name.casefold() == target for name in iter_principal_names(payload))


def reconcile(mutation: MutationResult, verification: VerificationResult) -> AccessState:
    """Derive the access state from the read-back alone.

    The revoke outcome never changes the verdict: a revoke that reported
    success while the user is still listed yields ``present``.

    Args:
        mutation: Outcome of the revoke call.
        verification: Outcome of the verify call.

    Returns:
        ``present``, ``revoked`` or ``unknown``.
    """
    state = verification.access_state
    if mutation.succeeded and state == "present":
        logger.warning(
            f"Revoke reported success but access persists (url={verification.request_url})"
        )
    elif not mutation.succeeded and state == "revoked":
        logger.info(
            f"Revoke was not accepted but no grant is listed (status={mutation.http_status})"
        )
    return state


def categorize(state: AccessState, unknown_policy: Category = HAS_ACCESS) -> Category:
    """Map an access state to its output category.

    Args:
        state: Reconciled access state.
        unknown_policy: Category used when verification could not determine access.

    Returns:
        Output category.
    """
    if state == "present":
        return HAS_ACCESS
    if state == "revoked":
        return NO_ACCESS
    return unknown_policy
