# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Public import surface for revoke and audit components."""

from revoker.bitbucket import BitbucketAccessClient
from revoker.config import AuditConfig, ConfigurationError, load_config
from revoker.evidence import EvidenceRenderer, PlaywrightEngine
from revoker.pipeline import RevokeAuditPipeline
from revoker.report import ReportAssembler, ReportWriteError

__all__ = [
    "AuditConfig",
    "BitbucketAccessClient",
    "ConfigurationError",
    "EvidenceRenderer",
    "PlaywrightEngine",
    "ReportAssembler",
    "ReportWriteError",
    "RevokeAuditPipeline",
    "load_config",
]
