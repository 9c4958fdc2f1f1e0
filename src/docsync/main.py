"""Main entry point for the docsync command."""

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from docsync.config import Config
from docsync.errors import DocSyncError, SyncAborted
from docsync.gateway import HttpEmbeddingGateway
from docsync.indexer import MODE_FULL, SYNC_MODES, Database, Indexer, SyncReport
from docsync.sync import SyncManager

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="docsync - sync a markdown/MDX documentation tree into a section store"
    )
    parser.add_argument(
        "root",
        nargs="?",
        type=Path,
        help="Docs root directory (overrides DOCSYNC_ROOT)",
    )
    parser.add_argument(
        "--mode",
        choices=SYNC_MODES,
        help="Sync mode (overrides DOCSYNC_MODE)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        help="SQLite store path (overrides DOCSYNC_DB)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        help="Keep running and sync every SECONDS (overrides DOCSYNC_SYNC_INTERVAL)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    """Load config from the environment and apply CLI overrides.

    Raises:
        ValueError: If any setting is invalid.
    """
    config = Config.from_env()

    overrides: dict = {}
    if args.root is not None:
        overrides["docs_root"] = args.root.expanduser()
        # Without --db or DOCSYNC_DB the store follows the root
        if args.db is None and not os.getenv("DOCSYNC_DB"):
            overrides["db_path"] = overrides["docs_root"] / ".docsync" / "index.db"
    if args.db is not None:
        overrides["db_path"] = args.db.expanduser()
    if args.mode is not None:
        overrides["mode"] = args.mode
    if args.interval is not None:
        if args.interval < 0:
            raise ValueError(f"Sync interval must be >= 0, got {args.interval}")
        overrides["sync_interval"] = args.interval

    config = replace(config, **overrides)
    if not config.embedding_api_key:
        raise ValueError("DOCSYNC_EMBEDDING_API_KEY is required")
    return config


def create_indexer(config: Config) -> tuple[Indexer, HttpEmbeddingGateway]:
    """Create the store, gateway and indexer described by ``config``."""
    logger.info("Initializing database at %s", config.db_path)
    db = Database(config.db_path, dimension=config.embedding_dimensions)

    gateway = HttpEmbeddingGateway(
        base_url=config.embedding_url,
        api_key=config.embedding_api_key,
        model=config.embedding_model,
        dimensions=config.embedding_dimensions,
        timeout=config.embedding_timeout,
    )

    indexer = Indexer(
        config.docs_root,
        db,
        gateway,
        ignore=config.ignore,
        workers=config.workers,
    )
    try:
        indexer.initialize()
    except DocSyncError:
        gateway.close()
        raise
    return indexer, gateway


def log_report(report: SyncReport) -> None:
    if report.errors:
        logger.error("Sync finished with errors: %s", report.summary())
        for error in report.errors:
            logger.error("  %s", error)
    else:
        logger.info("Sync finished: %s", report.summary())


def run(config: Config) -> int:
    """Run one sync pass, then keep syncing if an interval is configured.

    Returns:
        Process exit code.
    """
    if not config.docs_root.is_dir():
        logger.error("Docs root %s is not a directory", config.docs_root)
        return 1

    indexer, gateway = create_indexer(config)
    try:
        try:
            report = indexer.sync(mode=config.mode)
        except SyncAborted as e:
            logger.error("%s", e)
            if e.report is not None:
                log_report(e.report)
            return 1
        log_report(report)

        if config.sync_interval > 0:
            if config.mode == MODE_FULL:
                logger.info("Background passes run in incremental mode")
            manager = SyncManager(indexer, config.sync_interval)
            manager.start()
            try:
                manager.wait()
            except KeyboardInterrupt:
                logger.info("Stopped by user")
            finally:
                manager.stop()

        return 0 if report.ok else 1
    finally:
        indexer.close()
        gateway.close()


def main(argv: list[str] | None = None) -> None:
    """Main function - runs the docsync command."""
    args = parse_args(argv)

    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    logger.info("=" * 50)
    logger.info("docsync starting...")
    logger.info("  DOCSYNC_ROOT: %s", config.docs_root)
    logger.info("  DOCSYNC_DB:   %s", config.db_path)
    logger.info("  MODE:         %s", config.mode)
    logger.info("  MODEL:        %s (%d dims)", config.embedding_model, config.embedding_dimensions)
    logger.info("=" * 50)

    try:
        code = run(config)
    except DocSyncError:
        logger.exception("Sync failed")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
