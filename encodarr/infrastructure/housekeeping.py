import logging
import os
from pathlib import Path
from typing import Iterable


class HousekeepingService:
    """Service for cleaning up temp files a previous run left in the scratch directory."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def cleanup_temp_files(self, directory: Path, extensions: Iterable[str]) -> int:
        """Recursively removes scratch files with one of the given extensions.

        Only safe while no job is running: scratch files have random names
        and cannot be traced back to their job.
        """
        suffixes = {f".{ext.lstrip('.').lower()}" for ext in extensions}
        removed = 0
        if not Path(directory).exists():
            return removed
        for root, dirs, files in os.walk(directory):
            for file in files:
                path = Path(root) / file
                if path.suffix.lower() not in suffixes:
                    continue
                try:
                    path.unlink()
                    removed += 1
                except OSError as e:
                    self.logger.warning(f"Failed to remove stale temp file {path}: {e}")
        if removed:
            self.logger.info(f"Removed {removed} stale temp file(s) from {directory}")
        return removed
