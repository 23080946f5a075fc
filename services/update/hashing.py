"""Checksum helpers for release archive verification."""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path

from services.update.models import ChecksumRecord, FilesystemError, IntegrityError

_LOGGER = logging.getLogger(__name__)

_HEX_DIGEST = re.compile(r"[0-9a-fA-F]+")


def calculate_digest(path: Path, algorithm: str = "md5") -> str:
    try:
        digest = hashlib.new(algorithm)
    except ValueError as exc:
        raise IntegrityError(f"Unsupported checksum algorithm: {algorithm}") from exc
    try:
        with path.open("rb") as source:
            for chunk in iter(lambda: source.read(65536), b""):
                digest.update(chunk)
    except OSError as exc:
        raise FilesystemError(f"Unable to read {path} for hashing: {exc}") from exc
    return digest.hexdigest()


def parse_checksum_text(text: str) -> str:
    for token in text.split():
        if _HEX_DIGEST.fullmatch(token):
            return token.lower()
        raise IntegrityError(
            f"cannot validate update file (malformed checksum): {token!r}"
        )
    raise IntegrityError("cannot validate update file (checksum sidecar is empty)")


def read_checksum_record(sidecar: Path, artifact: Path) -> ChecksumRecord:
    try:
        text = sidecar.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        raise IntegrityError(
            f"cannot validate update file (checksum sidecar {sidecar} is not text): {exc}"
        ) from exc
    except OSError as exc:
        raise FilesystemError(f"Unable to read checksum sidecar {sidecar}: {exc}") from exc
    return ChecksumRecord(digest=parse_checksum_text(text), artifact=artifact)


def verify_artifact(record: ChecksumRecord, algorithm: str = "md5") -> str:
    """Return the computed digest, raising :class:`IntegrityError` on mismatch."""

    actual = calculate_digest(record.artifact, algorithm)
    if actual.lower() != record.digest.lower():
        raise IntegrityError(
            f"cannot validate update file (checksum mismatch): expected {record.digest} "
            f"but computed {actual}"
        )
    _LOGGER.info("Verified %s digest of %s", algorithm, record.artifact.name)
    return actual
