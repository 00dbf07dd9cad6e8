"""
Status cache module.

Stores the last computed status set as a JSON array. Every save replaces
the whole file (written to a temporary file, then renamed over the old
one), so readers never see a half-written cache.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from .audit_logger import AuditLogger
from .exceptions import PersistenceError
from .models import DomainStatus


class StatusCacheStore:
    """
    Flat JSON file cache of DomainStatus records.

    Loading never fails: a missing, unreadable or malformed file yields an
    empty list, which makes the next refresh look every domain up again.
    """

    def __init__(self, file_path: Path, logger: Optional[AuditLogger] = None) -> None:
        """
        Initialize the status cache.

        Args:
            file_path: Path to the cache file (JSON array)
            logger: Optional audit logger
        """
        self._file_path = Path(file_path)
        self._logger = logger

    def load(self) -> list[DomainStatus]:
        """
        Load cached statuses.

        Returns:
            Records in file order, at most one per domain; empty if the
            file is absent or corrupt
        """
        if not self._file_path.exists():
            self._log_info("No domain status cache found", {})
            return []

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self._log_warn(f"Error reading status cache, starting empty: {e}")
            return []

        if not isinstance(raw_data, list):
            self._log_warn("Status cache is not a JSON array, starting empty")
            return []

        statuses: list[DomainStatus] = []
        seen: set[str] = set()
        for item in raw_data:
            if not isinstance(item, dict):
                continue
            try:
                status = DomainStatus.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                self._log_warn(f"Skipping malformed cache entry: {e}")
                continue
            if status.domain in seen:
                continue
            seen.add(status.domain)
            statuses.append(status)

        return statuses

    def save(self, statuses: list[DomainStatus]) -> None:
        """
        Replace the cache with the given statuses.

        Raises:
            PersistenceError: If the file cannot be written
        """
        data = [status.to_dict() for status in statuses]

        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._file_path.name}.", dir=str(self._file_path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self._file_path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write status cache: {e}",
                details={"file_path": str(self._file_path)},
            ) from e

    @property
    def file_path(self) -> Path:
        """Get the cache file path."""
        return self._file_path

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.info("StatusCacheStore", message, data)

    def _log_warn(self, message: str) -> None:
        if self._logger:
            self._logger.warn(
                "StatusCacheStore", message, {"file_path": str(self._file_path)}
            )
