# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Output directory layout for one run."""

from dataclasses import dataclass
from pathlib import Path

from revoker.model import HAS_ACCESS, Category

HAS_ACCESS_REPORT = "Bitbucket_Has_Access_Report.docx"
NO_ACCESS_REPORT = "Bitbucket_No_Access_Report.docx"


@dataclass(frozen=True)
class OutputLayout:
    """Locations of every artifact written by a run."""

    root: Path

    @property
    def markup_dir(self) -> Path:
        return self.root / "html"

    @property
    def has_access_image_dir(self) -> Path:
        return self.root / "png" / "has_access"

    @property
    def no_access_image_dir(self) -> Path:
        return self.root / "png" / "no_access"

    @property
    def report_dir(self) -> Path:
        return self.root / "doc"

    @property
    def log_dir(self) -> Path:
        return self.root / "logs"

    @property
    def has_access_csv(self) -> Path:
        return self.root / "access_check_results_after_revoke.csv"

    @property
    def no_access_csv(self) -> Path:
        return self.root / "no_access_check_results_after_revoke.csv"

    def image_dir(self, category: Category) -> Path:
        """Return the image directory for ``category``."""
        return self.has_access_image_dir if category == HAS_ACCESS else self.no_access_image_dir

    def ensure(self) -> None:
        """Create all output directories."""
        for directory in (
            self.root,
            self.markup_dir,
            self.has_access_image_dir,
            self.no_access_image_dir,
            self.report_dir,
            self.log_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)
