# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Revoke, verify and evidence orchestration for a batch of records."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from revoker.access_client import AccessClient
from revoker.evidence import (
    DISPLAY_TIMESTAMP_FORMAT,
    EvidenceRenderer,
    EvidenceRequest,
    evidence_basename,
)
from revoker.layout import HAS_ACCESS_REPORT, NO_ACCESS_REPORT, OutputLayout
from revoker.model import (
    HAS_ACCESS,
    AccessRecord,
    Category,
    RecordOutcome,
    RunSummary,
)
from revoker.reconciler import categorize, reconcile
from revoker.records import CategoryWriter
from revoker.report import ReportAssembler, ReportWriteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportOutcome:
    """Represent the result of assembling one category report.

    Attributes:
        title: Document title.
        output_path: Written report, or ``None`` when skipped or failed.
        error: Write failure detail.
    """

    title: str
    output_path: Path | None
    error: str | None = None


class RevokeAuditPipeline:
    """Run the revoke/verify/evidence cycle for each actionable record."""

    def __init__(
        self,
        client: AccessClient,
        renderer: EvidenceRenderer,
        writer: CategoryWriter,
        layout: OutputLayout,
        unknown_policy: Category = HAS_ACCESS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize pipeline collaborators.

        Args:
            client: Remote authorization API client.
            renderer: Evidence renderer writing markup and images.
            writer: Categorized CSV writer.
            layout: Output directory layout.
            unknown_policy: Category for records whose verification failed.
            clock: Time source for timestamps and file names.
        """
        self._client = client
        self._renderer = renderer
        self._writer = writer
        self._layout = layout
        self._unknown_policy = unknown_policy
        self._clock = clock

    def run(self, records: Iterable[AccessRecord]) -> RunSummary:
        """Process records strictly one after another.

        Args:
            records: Input records; non-actionable ones are skipped.

        Returns:
            Counters for the run.
        """
        summary = RunSummary()
        for record in records:
            if not record.is_actionable:
                logger.info(
                    f"Skipping record (user={record.username} project={record.project_key} "
                    f"status={record.status})"
                )
                summary.skipped += 1
                continue
            summary.add(self.process(record))
        return summary

    def process(self, record: AccessRecord) -> RecordOutcome:
        """Revoke, verify, render evidence and categorize one record.

        Every call appends exactly one output row and produces one evidence
        artifact, whatever the revoke outcome.

        Args:
            record: Actionable record.

        Returns:
            Outcome for the record.
        """
        logger.info(f"Revoking access (user={record.username} project={record.project_key})")
        mutation = self._client.revoke(record.project_key, record.username)
        logger.info(
            f"Revoke finished (user={record.username} status={mutation.http_status} "
            f"result={'OK' if mutation.succeeded else 'FAILED'})"
        )

        verification = self._client.verify(record.project_key, record.username)
        state = reconcile(mutation, verification)
        category = categorize(state, self._unknown_policy)
        logger.info(
            f"Verify finished (user={record.username} status={verification.http_status} "
            f"state={state} category={category})"
        )

        moment = self._clock()
        destination = self._layout.image_dir(category) / (
            evidence_basename(record.username, record.project_key, moment) + ".png"
        )
        artifact = self._renderer.render(
            EvidenceRequest.from_verification(
                user=record.username,
                account_id=record.account_id,
                project_key=record.project_key,
                verification=verification,
            ),
            destination,
            moment=moment,
        )
        self._writer.append(
            record=record,
            category=category,
            timestamp=moment.strftime(DISPLAY_TIMESTAMP_FORMAT),
            screenshot=artifact.image_file,
        )
        return RecordOutcome(
            record=record,
            mutation=mutation,
            verification=verification,
            category=category,
            artifact=artifact,
        )

    def build_reports(self, assembler: ReportAssembler) -> list[ReportOutcome]:
        """Assemble both category reports independently.

        A write failure in one report is recorded and does not prevent the
        other report from being generated.

        Args:
            assembler: Report assembler.

        Returns:
            One outcome per category, has-access first.
        """
        outcomes: list[ReportOutcome] = []
        for source_dir, file_name in (
            (self._layout.has_access_image_dir, HAS_ACCESS_REPORT),
            (self._layout.no_access_image_dir, NO_ACCESS_REPORT),
        ):
            title = Path(file_name).stem
            try:
                written = assembler.assemble(
                    source_dir=source_dir,
                    title=title,
                    output_path=self._layout.report_dir / file_name,
                )
            except ReportWriteError as exc:
                logger.error(f"Report generation failed (title={title} error={exc})")
                outcomes.append(ReportOutcome(title=title, output_path=None, error=str(exc)))
                continue
            outcomes.append(ReportOutcome(title=title, output_path=written))
        return outcomes
