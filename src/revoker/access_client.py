# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Access mutation client abstractions."""

import logging
from typing import Protocol

from revoker.model import MutationResult, VerificationResult

logger = logging.getLogger(__name__)


class AccessClient(Protocol):
    """Define revoke and verify behavior against an authorization API.

    Implementations never raise for transport faults; failures are reported
    through the returned result objects.
    """

    def revoke(self, project_key: str, username: str) -> MutationResult:
        """Withdraw the user's project-level permission grant.

        Args:
            project_key: Project the grant is scoped to.
            username: User whose grant is withdrawn.

        Returns:
            Outcome of the single revoke attempt.
        """

    def verify(self, project_key: str, username: str) -> VerificationResult:
        """Read back the user's current project-level permission state.

        Args:
            project_key: Project to query.
            username: User to look for.

        Returns:
            Outcome of the read-back call.
        """
