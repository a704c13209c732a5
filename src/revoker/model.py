# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Domain models for revoke and audit runs."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

Category = Literal["HAS_ACCESS", "NO_ACCESS"]
AccessState = Literal["present", "revoked", "unknown"]

HAS_ACCESS: Category = "HAS_ACCESS"
NO_ACCESS: Category = "NO_ACCESS"


@dataclass(frozen=True)
class AccessRecord:
    """Represent one input row describing a project permission grant.

    Attributes:
        username: Bitbucket user slug/name the grant belongs to.
        account_id: Account identifier carried through to evidence and output.
        project_key: Project the grant is scoped to.
        permission: Permission name as reported by the access check.
        status: Access status sentinel from the input (``HAS_ACCESS``/``NO_ACCESS``).
    """

    username: str
    account_id: str
    project_key: str
    permission: str
    status: str

    @property
    def is_actionable(self) -> bool:
        """Return whether this record still needs a revoke/verify cycle."""
        return self.status == HAS_ACCESS


@dataclass(frozen=True)
class MutationResult:
    """Represent the outcome of one revoke call.

    Attributes:
        succeeded: ``True`` only when the server answered ``204 No Content``.
        http_status: Response status code; ``None`` on transport failure.
        request_url: Exact URL the request was sent to.
        transport_error: Transport failure message, if any.
    """

    succeeded: bool
    http_status: int | None
    request_url: str
    transport_error: str | None = None


@dataclass(frozen=True)
class VerificationResult:
    """Represent the outcome of one read-back call.

    Attributes:
        succeeded: Whether the server returned a usable 2xx response.
        http_status: Response status code; ``None`` on transport failure.
        still_has_access: Whether the target user is still listed.
        raw_payload: Decoded response body, or ``None`` when unavailable.
        request_url: Exact URL the request was sent to.
        transport_error: Transport failure message, if any.
    """

    succeeded: bool
    http_status: int | None
    still_has_access: bool
    raw_payload: Any
    request_url: str
    transport_error: str | None = None

    @property
    def access_state(self) -> AccessState:
        """Return the tri-state view of this verification."""
        if not self.succeeded:
            return "unknown"
        return "present" if self.still_has_access else "revoked"


@dataclass(frozen=True)
class EvidenceArtifact:
    """Represent the durable evidence produced for one record.

    Attributes:
        markup_file: Rendered HTML evidence page.
        image_file: Final (trimmed) raster image.
        captured_at: Moment the evidence page was generated.
        capture_mode: How the image was produced (``clip``, ``full_page`` or ``text``).
    """

    markup_file: Path
    image_file: Path
    captured_at: datetime
    capture_mode: str = "clip"


@dataclass(frozen=True)
class RecordOutcome:
    """Represent everything produced for one processed record."""

    record: AccessRecord
    mutation: MutationResult
    verification: VerificationResult
    category: Category
    artifact: EvidenceArtifact


@dataclass
class RunSummary:
    """Accumulate counters for one batch run."""

    processed: int = 0
    skipped: int = 0
    has_access: int = 0
    no_access: int = 0
    revoke_failed: int = 0
    verify_failed: int = 0
    capture_fallbacks: int = 0

    def add(self, outcome: RecordOutcome) -> None:
        """Fold one record outcome into the counters.

        Args:
            outcome: Outcome of a processed record.
        """
        self.processed += 1
        if outcome.category == HAS_ACCESS:
            self.has_access += 1
        else:
            self.no_access += 1
        if not outcome.mutation.succeeded:
            self.revoke_failed += 1
        if not outcome.verification.succeeded:
            self.verify_failed += 1
        if outcome.artifact.capture_mode != "clip":
            self.capture_fallbacks += 1

    def as_dict(self) -> dict[str, int]:
        """Return counters in display order."""
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "has_access": self.has_access,
            "no_access": self.no_access,
            "revoke_failed": self.revoke_failed,
            "verify_failed": self.verify_failed,
            "capture_fallbacks": self.capture_fallbacks,
        }
