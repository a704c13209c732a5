# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Tabular input reading and categorized output writing."""

import csv
import logging
from dataclasses import dataclass
from pathlib import Path

from revoker.model import HAS_ACCESS, AccessRecord, Category

logger = logging.getLogger(__name__)

INPUT_COLUMNS = ("Username", "Account ID", "Project Key", "Access Permission", "Access Status")
OUTPUT_HEADER = (*INPUT_COLUMNS, "Timestamp", "Screenshot")


class InputSourceError(RuntimeError):
    """Represent a missing or unreadable input source."""


def read_access_records(path: Path) -> list[AccessRecord]:
    """Read access check rows from a CSV file with a header row.

    Rows without a username or project key are dropped.

    Args:
        path: Input CSV path.

    Returns:
        Parsed records in file order.

    Raises:
        InputSourceError: If the file is missing or cannot be decoded.
    """
    if not path.is_file():
        raise InputSourceError(f"CSV not found: {path}")
    try:
        with path.open(newline="", encoding="utf-8-sig") as handle:
            rows = list(csv.DictReader(handle))
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        logger.warning(f"Failed reading input CSV (path={path} error={exc})")
        raise InputSourceError(f"Failed reading {path}: {exc}") from exc

    records: list[AccessRecord] = []
    for row in rows:
        values = {column: (row.get(column) or "").strip() for column in INPUT_COLUMNS}
        if not values["Username"] or not values["Project Key"]:
            continue
        records.append(
            AccessRecord(
                username=values["Username"],
                account_id=values["Account ID"],
                project_key=values["Project Key"],
                permission=values["Access Permission"],
                status=values["Access Status"],
            )
        )
    return records


@dataclass(frozen=True)
class CategoryWriter:
    """Append processed records to one of two categorized CSV files."""

    has_access_path: Path
    no_access_path: Path

    def reset(self) -> None:
        """Recreate both output files containing only the header row."""
        for path in (self.has_access_path, self.no_access_path):
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", newline="", encoding="utf-8") as handle:
                csv.writer(handle).writerow(OUTPUT_HEADER)

    def path_for(self, category: Category) -> Path:
        """Return the output file receiving ``category`` rows."""
        return self.has_access_path if category == HAS_ACCESS else self.no_access_path

    def append(
        self,
        record: AccessRecord,
        category: Category,
        timestamp: str,
        screenshot: Path,
    ) -> Path:
        """Append one row to the file matching ``category``.

        Args:
            record: Processed record.
            category: Verdict category written to the status column.
            timestamp: Display timestamp of the cycle.
            screenshot: Final evidence image path.

        Returns:
            Path of the file the row was appended to.
        """
        path = self.path_for(category)
        with path.open("a", newline="", encoding="utf-8") as handle:
            csv.writer(handle).writerow(
                (
                    record.username,
                    record.account_id,
                    record.project_key,
                    record.permission,
                    category,
                    timestamp,
                    str(screenshot),
                )
            )
        return path
