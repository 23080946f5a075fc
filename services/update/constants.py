"""Constants shared across the update service modules."""

from __future__ import annotations

DESCRIPTOR_FILE_NAME = "descriptor.json"
ARTIFACT_FILE_NAME = "assets.zip"
EXTRACTED_DIR_NAME = "assets"
HANDOFF_RECORD_NAME = "replacement.json"
HELPER_LOG_NAME = "update-helper.log"
HELPER_DIR_PREFIX = "selfupdate-helper-"
CLEANUP_MARKER_NAME = "cleanup.json"
CLEANUP_SCRIPT_SUFFIX = ".cmd"
HELPER_SUBCOMMAND = "replace-helper"
VERSION_SUBCOMMAND = "version"

MAX_ARCHIVE_TOTAL_BYTES = 500 * 1024 * 1024  # 500 MiB
MAX_ARCHIVE_FILE_SIZE = 250 * 1024 * 1024  # 250 MiB per file
MAX_ARCHIVE_ENTRIES = 10000
MAX_COMPRESSION_RATIO = 100  # Uncompressed vs compressed bytes
SCHTASKS_MAX_ACTION_LENGTH = 261  # Longest /tr value schtasks accepts

LOCAL_DESCRIPTOR_ENV = "SELFUPDATE_LOCAL_DIR"
INSTALL_ROOT_ENV = "SELFUPDATE_INSTALL_ROOT"

ROLLBACK_UNAVAILABLE_MESSAGE = (
    "no backup available: backups are only available for {days} days after upgrading"
)
