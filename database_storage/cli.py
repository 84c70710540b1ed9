"""
Database Storage - CLI.

============================================================
RESPONSIBILITY
============================================================
Maintenance commands for stored form submissions.

- list:    storage identifiers with their submission counts
- cleanup: retention cleanup of old submissions

============================================================
USAGE
============================================================
python -m database_storage.cli list
python -m database_storage.cli cleanup --identifier contact --older-than-days 180
python -m database_storage.cli cleanup          # applies DATABASE_STORAGE_CLEANUP

============================================================
"""

import argparse
import logging
import sys
from datetime import timedelta
from typing import List, Optional, TextIO

from sqlalchemy.orm import Session

from database.engine import create_all_tables, get_db_session
from database_storage.config import CleanupRule, DatabaseStorageConfig, setup_logging
from storage.repositories.database_storage import DatabaseStorageRepository
from storage.repositories.exceptions import RepositoryException
from storage.resources import LocalResourceStore

logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="database-storage",
        description="Maintenance commands for stored form submissions",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List storage identifiers and submission counts")

    cleanup = subparsers.add_parser(
        "cleanup",
        help="Delete old submissions",
        description=(
            "Delete submissions older than a given age. Without --identifier "
            "the rules from DATABASE_STORAGE_CLEANUP are applied."
        ),
    )
    cleanup.add_argument("--identifier", "-i", help="Storage identifier to clean up")
    cleanup.add_argument(
        "--older-than-days",
        type=int,
        default=None,
        metavar="DAYS",
        help="Delete submissions older than DAYS days (default: all submissions)",
    )
    cleanup.add_argument(
        "--remove-attached-resources",
        action="store_true",
        help="Also delete uploaded files of removed submissions",
    )
    return parser


# ============================================================
# COMMANDS
# ============================================================

def cleanup_rules_from_args(args: argparse.Namespace, config: DatabaseStorageConfig) -> List[CleanupRule]:
    if args.identifier:
        if args.older_than_days is not None and args.older_than_days < 0:
            raise ValueError("--older-than-days must not be negative")
        max_age = timedelta(days=args.older_than_days) if args.older_than_days is not None else None
        return [CleanupRule(args.identifier, max_age, args.remove_attached_resources)]
    return list(config.cleanup_rules)


def run_cleanup(repository: DatabaseStorageRepository, rules: List[CleanupRule], out: TextIO) -> int:
    """
    Apply cleanup rules. A rule without max_age removes all
    submissions of its identifier.

    Returns:
        Total number of removed submissions
    """
    total = 0
    for rule in rules:
        if rule.max_age is None:
            removed = repository.delete_by_identifier(
                rule.identifier, cascade_resources=rule.remove_attached_resources
            )
        else:
            removed = repository.delete_older_than(
                rule.identifier, rule.max_age, cascade_resources=rule.remove_attached_resources
            )
        out.write(f"{rule.identifier}: {removed} entries removed\n")
        total += removed
    return total


def run_list(repository: DatabaseStorageRepository, out: TextIO) -> int:
    identifiers = repository.list_distinct_identifiers()
    for identifier in identifiers:
        out.write(f"{identifier}\t{repository.count_by_identifier(identifier)}\n")
    return len(identifiers)


def execute(args: argparse.Namespace, session: Session, config: DatabaseStorageConfig, out: TextIO) -> int:
    """Run a parsed command against a session. Returns the exit code."""
    resource_store = LocalResourceStore(config.resource_path, config.resource_base_url)
    repository = DatabaseStorageRepository(session, resource_store, config.export_batch_size)

    if args.command == "list":
        run_list(repository, out)
        return 0

    rules = cleanup_rules_from_args(args, config)
    if not rules:
        out.write("No cleanup rules configured, nothing to do\n")
        return 0
    total = run_cleanup(repository, rules, out)
    logger.info(f"Cleanup finished, {total} entries removed")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    config = DatabaseStorageConfig.from_env()
    setup_logging(args.log_level or config.log_level)

    try:
        create_all_tables()
        with get_db_session() as session:
            return execute(args, session, config, sys.stdout)
    except (RepositoryException, ValueError) as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
