"""
Database Storage - Configuration.

============================================================
PURPOSE
============================================================
All configuration for listing, exporting and storing form
submissions. Values come from the environment (a .env file
is honoured), every option has a working default.

============================================================
"""

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv


# ============================================================
# FIELD IGNORE RULES
# ============================================================

def _split_patterns(value: Optional[str]) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    return tuple(p.strip() for p in value.split(",") if p.strip())


@dataclass(frozen=True)
class IgnoreRules:
    """
    Allow/deny rule set for form field identifiers.

    Patterns are shell-style globs (fnmatch, case-sensitive).
    A field is ignored when it matches a deny pattern and no
    allow pattern. Allow always wins.
    """

    deny: Tuple[str, ...] = ()
    """Patterns of fields to ignore."""

    allow: Tuple[str, ...] = ()
    """Patterns of fields kept even if denied."""

    def is_ignored(self, field_key: str) -> bool:
        if any(fnmatch.fnmatchcase(field_key, p) for p in self.allow):
            return False
        return any(fnmatch.fnmatchcase(field_key, p) for p in self.deny)


DEFAULT_FINISHER_IGNORE = IgnoreRules(
    deny=("__*", "--*", "databaseStorageIdentifier"),
)

DEFAULT_EXPORT_IGNORE = IgnoreRules(
    deny=("__*",),
)


# ============================================================
# RETENTION CLEANUP
# ============================================================

@dataclass(frozen=True)
class CleanupRule:
    """Retention rule for one storage identifier."""

    identifier: str
    max_age: Optional[timedelta]
    """None removes every submission of the identifier."""

    remove_attached_resources: bool = False


def parse_cleanup_rules(value: Optional[str]) -> List[CleanupRule]:
    """
    Parse "identifier:days[:cascade],..." into cleanup rules.

    cascade is one of 1/true/yes (anything else is false).

    Raises:
        ValueError: On malformed entries
    """
    rules: List[CleanupRule] = []
    if not value:
        return rules
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) not in (2, 3) or not parts[0]:
            raise ValueError(f"Invalid cleanup rule: {entry!r}")
        days = int(parts[1])
        cascade = len(parts) == 3 and parts[2].lower() in ("1", "true", "yes")
        rules.append(CleanupRule(parts[0], timedelta(days=days), cascade))
    return rules


# ============================================================
# MAIN CONFIGURATION
# ============================================================

@dataclass
class DatabaseStorageConfig:
    """
    Main configuration for the database storage package.
    """

    items_per_page: int = 10
    """Submissions per page in the listing."""

    datetime_format: str = "%Y-%m-%d %H:%M:%S"
    """strftime pattern for display and the DateTime export column."""

    # Export file metadata
    creator: str = "Database Storage"
    title: str = "Database Storage Export"
    subject: str = "Form submissions"

    finisher_ignore: IgnoreRules = DEFAULT_FINISHER_IGNORE
    """Fields dropped before a submission is stored."""

    export_ignore: IgnoreRules = DEFAULT_EXPORT_IGNORE
    """Fields hidden from listing and export."""

    resource_path: Path = Path("./data/resources")
    """Root directory of the local resource store."""

    resource_base_url: Optional[str] = None
    """Public base URL of stored resources, if served."""

    export_batch_size: int = 500
    """Rows fetched per round trip while exporting or bulk deleting."""

    cleanup_rules: List[CleanupRule] = field(default_factory=list)
    """Retention rules applied by the cleanup command."""

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "DatabaseStorageConfig":
        """Load configuration from environment variables."""
        load_dotenv()
        finisher_deny = _split_patterns(os.getenv("DATABASE_STORAGE_FINISHER_IGNORE"))
        finisher_allow = _split_patterns(os.getenv("DATABASE_STORAGE_FINISHER_ALLOW"))
        export_deny = _split_patterns(os.getenv("DATABASE_STORAGE_EXPORT_IGNORE"))
        export_allow = _split_patterns(os.getenv("DATABASE_STORAGE_EXPORT_ALLOW"))
        return cls(
            items_per_page=int(os.getenv("DATABASE_STORAGE_ITEMS_PER_PAGE", "10")),
            datetime_format=os.getenv("DATABASE_STORAGE_DATETIME_FORMAT", "%Y-%m-%d %H:%M:%S"),
            creator=os.getenv("DATABASE_STORAGE_CREATOR", "Database Storage"),
            title=os.getenv("DATABASE_STORAGE_TITLE", "Database Storage Export"),
            subject=os.getenv("DATABASE_STORAGE_SUBJECT", "Form submissions"),
            finisher_ignore=IgnoreRules(
                deny=finisher_deny if finisher_deny is not None else DEFAULT_FINISHER_IGNORE.deny,
                allow=finisher_allow or (),
            ),
            export_ignore=IgnoreRules(
                deny=export_deny if export_deny is not None else DEFAULT_EXPORT_IGNORE.deny,
                allow=export_allow or (),
            ),
            resource_path=Path(os.getenv("DATABASE_STORAGE_RESOURCE_PATH", "./data/resources")),
            resource_base_url=os.getenv("DATABASE_STORAGE_RESOURCE_BASE_URL") or None,
            export_batch_size=int(os.getenv("DATABASE_STORAGE_EXPORT_BATCH_SIZE", "500")),
            cleanup_rules=parse_cleanup_rules(os.getenv("DATABASE_STORAGE_CLEANUP")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []
        if self.items_per_page < 1:
            errors.append(f"items_per_page must be >= 1, got {self.items_per_page}")
        if not self.datetime_format.strip():
            errors.append("datetime_format must not be empty")
        if self.export_batch_size < 1:
            errors.append(f"export_batch_size must be >= 1, got {self.export_batch_size}")
        if not self.title.strip():
            errors.append("title must not be empty")
        return errors

    def export_metadata(self) -> Dict[str, str]:
        return {"creator": self.creator, "title": self.title, "subject": self.subject}


# ============================================================
# LOGGING
# ============================================================

def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
