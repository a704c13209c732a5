# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Revoke flagged project grants and produce audit evidence."""

import argparse
import logging
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

from dotenv import dotenv_values
from rich.console import Console
from rich.logging import RichHandler

from revoker.access_client import AccessClient
from revoker.bitbucket import BitbucketAccessClient
from revoker.config import (
    DEFAULT_RENDER_TIMEOUT_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    AuditConfig,
    ConfigurationError,
    load_config,
)
from revoker.evidence import EvidenceRenderer, PlaywrightEngine, RenderEngine
from revoker.layout import OutputLayout
from revoker.model import HAS_ACCESS, NO_ACCESS, AccessRecord
from revoker.pipeline import RevokeAuditPipeline
from revoker.records import CategoryWriter, InputSourceError, read_access_records
from revoker.report import ReportAssembler

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIGURATION = 1
EXIT_RUNTIME = 2

DEFAULT_INPUT = Path("input_files") / "access_check_results.csv"
DEFAULT_OUTPUT = Path("output_files")
LOG_FILE_NAME = "revoke_and_audit.log"

ClientFactory = Callable[[AuditConfig], AccessClient]
EngineFactory = Callable[[AuditConfig], RenderEngine]


def configure_logging(level: int = logging.INFO) -> None:
    """Configure application logging with Rich handler.

    Args:
        level: Logging severity threshold.
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def attach_log_file(log_file: Path) -> logging.Handler:
    """Mirror root logger records into a plain-text run log.

    Args:
        log_file: Log file path; parent directories are created.

    Returns:
        The attached handler, to be detached with ``detach_log_file``.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logging.getLogger().addHandler(handler)
    return handler


def detach_log_file(handler: logging.Handler) -> None:
    """Remove and close a handler added by ``attach_log_file``."""
    logging.getLogger().removeHandler(handler)
    handler.close()


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser.

    Returns:
        Configured argument parser instance.
    """
    parser = argparse.ArgumentParser(prog="bb-revoke")
    parser.add_argument(
        "--root",
        default=".",
        help="Working root holding input_files/ and output_files/.",
    )
    parser.add_argument(
        "--input",
        required=False,
        help="Access check CSV (default: <root>/input_files/access_check_results.csv).",
    )
    parser.add_argument(
        "--output-dir",
        required=False,
        help="Output directory (default: <root>/output_files).",
    )
    parser.add_argument(
        "--env-file",
        required=False,
        help="Optional .env file with BB_URL, BB_USERNAME and BB_KEYNAME (default: <root>/.env).",
    )
    parser.add_argument(
        "--unknown-as",
        choices=(HAS_ACCESS, NO_ACCESS),
        default=HAS_ACCESS,
        help="Category for records whose verification could not complete.",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS,
        help="Timeout in seconds for each API call.",
    )
    parser.add_argument(
        "--render-timeout",
        type=float,
        default=DEFAULT_RENDER_TIMEOUT_SECONDS,
        help="Timeout in seconds for each headless browser operation.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def run(
    argv: list[str],
    stdout: TextIO,
    stderr: TextIO,
    environ: dict[str, str] | None = None,
    client_factory: ClientFactory | None = None,
    engine_factory: EngineFactory | None = None,
) -> int:
    """Run the revoke and audit command.

    Args:
        argv: CLI arguments.
        stdout: Standard output stream.
        stderr: Standard error stream.
        environ: Process environment; defaults to ``os.environ``.
        client_factory: Access client factory override.
        engine_factory: Rendering engine factory override.

    Returns:
        Exit code.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit:
        logger.warning(f"Argument parsing failed (argv={argv})")
        return EXIT_CONFIGURATION

    root = Path(args.root)
    input_path = Path(args.input) if args.input else root / DEFAULT_INPUT
    layout = OutputLayout(Path(args.output_dir) if args.output_dir else root / DEFAULT_OUTPUT)
    env_file = Path(args.env_file) if args.env_file else root / ".env"

    try:
        config = load_config(
            _merge_environment(env_file=env_file, environ=environ),
            request_timeout=args.request_timeout,
            render_timeout=args.render_timeout,
            unknown_policy=args.unknown_as,
        )
    except ConfigurationError as exc:
        stderr.write(f"{exc}\n")
        return EXIT_CONFIGURATION

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    console = Console(file=stdout, force_terminal=False, color_system="truecolor", soft_wrap=True)
    try:
        layout.ensure()
    except OSError as exc:
        logger.error(f"Output layout could not be created (root={layout.root} error={exc})")
        stderr.write(f"Fatal error: {exc}\n")
        return EXIT_RUNTIME

    log_handler = attach_log_file(layout.log_dir / LOG_FILE_NAME)
    try:
        console.print(f"Reading: {input_path}")
        try:
            records = read_access_records(input_path)
        except InputSourceError as exc:
            logger.warning(f"Input source unavailable (error={exc})")
            stderr.write(f"{exc}\n")
            return EXIT_CONFIGURATION

        build_client = client_factory or BitbucketAccessClient
        build_engine = engine_factory or _playwright_engine
        client = build_client(config)
        try:
            return _run_pipeline(
                config=config,
                layout=layout,
                records=records,
                client=client,
                engine=build_engine(config),
                console=console,
                stderr=stderr,
            )
        except Exception as exc:  # noqa: BLE001 - top-level fault boundary
            logger.exception(f"Fatal error (error={exc})")
            stderr.write(f"Fatal error: {exc}\n")
            return EXIT_RUNTIME
        finally:
            close = getattr(client, "close", None)
            if callable(close):
                close()
    finally:
        detach_log_file(log_handler)


def _playwright_engine(config: AuditConfig) -> RenderEngine:
    return PlaywrightEngine(timeout_seconds=config.render_timeout)


def _run_pipeline(
    config: AuditConfig,
    layout: OutputLayout,
    records: list[AccessRecord],
    client: AccessClient,
    engine: RenderEngine,
    console: Console,
    stderr: TextIO,
) -> int:
    writer = CategoryWriter(
        has_access_path=layout.has_access_csv, no_access_path=layout.no_access_csv
    )
    writer.reset()
    pipeline = RevokeAuditPipeline(
        client=client,
        renderer=EvidenceRenderer(engine=engine, markup_dir=layout.markup_dir),
        writer=writer,
        layout=layout,
        unknown_policy=config.unknown_policy,
    )

    _emit_marker(console=console, phase="revoke", state="start")
    summary = pipeline.run(records)
    _emit_marker(console=console, phase="revoke", state="done")
    _emit_summary(console=console, summary=summary.as_dict())

    _emit_marker(console=console, phase="reports", state="start")
    outcomes = pipeline.build_reports(ReportAssembler())
    _emit_marker(console=console, phase="reports", state="done")
    failed = False
    for outcome in outcomes:
        if outcome.error is not None:
            failed = True
            stderr.write(f"Report failed: {outcome.title}: {outcome.error}\n")
        elif outcome.output_path is not None:
            console.print(f"DOCX created -> {outcome.output_path}")
        else:
            console.print(f"No images for {outcome.title}; report skipped")

    if failed:
        console.print("status=failed")
        return EXIT_RUNTIME
    console.print(f"status=success output={layout.root}")
    return EXIT_OK


def _merge_environment(env_file: Path, environ: dict[str, str] | None) -> dict[str, str | None]:
    """Merge ``.env`` values with the process environment; the environment wins."""
    values: dict[str, str | None] = {}
    if env_file.is_file():
        values.update(dotenv_values(env_file))
    values.update(os.environ if environ is None else environ)
    return values


def _emit_marker(console: Console, phase: str, state: str) -> None:
    console.print(f"{phase}:{state}")


def _emit_summary(console: Console, summary: dict[str, int]) -> None:
    fields = " ".join(f"{key}={value}" for key, value in summary.items())
    console.print(fields)


def main() -> None:
    """Run the CLI application and exit."""
    configure_logging()
    exit_code = run(sys.argv[1:], stdout=sys.stdout, stderr=sys.stderr)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
