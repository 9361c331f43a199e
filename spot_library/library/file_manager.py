"""
File mutators for spot-library: delete, quarantine and restore.

Every successful delete or move invalidates the affected scan cache
entries through the ScanCacheRegistry, and can also drop the files from
an in-memory DuplicateScanResult so groups never point at files that
are gone.

Quarantine layout:
    <root>/
    ├── Album/
    │   └── 01 - Track.mp3
    └── .spot_library_quarantine/         # hidden, never scanned
        └── Album/
            └── 01 - Track.flac           # same relative path as before

Batch operations return a per-path status map:
    "deleted", "missing", "moved", "outside_root", "restored",
    "not_in_quarantine", or an error message for a failed path.

Usage:
    manager = FileManager(registry)
    statuses = manager.move_to_quarantine(group.paths[1:], "/music", result=scan_result)
    restored = manager.restore_from_quarantine(manager.list_quarantine("/music"), "/music")
"""

import os
import shutil
import time
from pathlib import Path

from spot_library.core.cache import ScanCacheRegistry
from spot_library.core.exceptions import FileOperationError, InputError
from spot_library.core.logger import get_logger
from spot_library.library.models import DuplicateScanResult
from spot_library.library.normalize import normalize_path, path_is_within


logger = get_logger(__name__)


# Name of the quarantine folder inside a root (hidden, skipped by scans)
QUARANTINE_DIRNAME = ".spot_library_quarantine"

STATUS_DELETED = "deleted"
STATUS_MISSING = "missing"
STATUS_MOVED = "moved"
STATUS_OUTSIDE_ROOT = "outside_root"
STATUS_RESTORED = "restored"
STATUS_NOT_IN_QUARANTINE = "not_in_quarantine"


def quarantine_dir(root_path: str) -> str:
    return f"{normalize_path(root_path)}/{QUARANTINE_DIRNAME}"


def _free_destination(dest: str, marker: str) -> str:
    """Return dest, or "name.<marker>.<unix time>.ext" if dest is taken."""
    if not os.path.exists(dest):
        return dest
    base, ext = os.path.splitext(dest)
    return f"{base}.{marker}.{int(time.time())}{ext}"


class FileManager:
    """
    Deletes and moves library files, keeping the scan cache consistent.

    Attributes:
        cache_registry: Registry whose caches are invalidated after each change.
    """

    def __init__(self, cache_registry: ScanCacheRegistry) -> None:
        self.cache_registry = cache_registry

    def _after_removal(self, paths: list[str], result: DuplicateScanResult | None) -> None:
        if not paths:
            return
        self.cache_registry.invalidate_paths(paths)
        if result is not None:
            removed_groups = result.discard_files(paths)
            if removed_groups:
                logger.debug(f"{removed_groups} duplicate group(s) no longer have two files")

    # =========================================================================
    # Delete
    # =========================================================================

    def delete_file(self, file_path: str, result: DuplicateScanResult | None = None) -> None:
        """
        Delete one file.

        Args:
            file_path: File to delete.
            result: Optional scan result to update.

        Raises:
            InputError: If the path is empty.
            FileOperationError: If the file does not exist or cannot be deleted.
        """
        path = normalize_path(file_path)
        if not os.path.isfile(path):
            raise FileOperationError(
                f"File does not exist: {path}",
                details={"file_path": path}
            )
        try:
            os.remove(path)
        except OSError as e:
            raise FileOperationError(
                f"Failed to delete {path}: {e}",
                details={"file_path": path, "original_error": str(e)}
            ) from e

        logger.info(f"Deleted {path}")
        self._after_removal([path], result)

    def delete_files(
        self,
        file_paths: list[str],
        result: DuplicateScanResult | None = None
    ) -> dict[str, str]:
        """
        Delete several files; failures do not stop the others.

        Returns:
            Map of path -> "deleted", "missing" or an error message.

        Raises:
            InputError: If file_paths is empty.
        """
        if not file_paths:
            raise InputError("No file paths provided")

        statuses: dict[str, str] = {}
        deleted: list[str] = []
        for file_path in file_paths:
            if not file_path:
                continue
            path = normalize_path(file_path)
            if not os.path.isfile(path):
                statuses[file_path] = STATUS_MISSING
                continue
            try:
                os.remove(path)
            except OSError as e:
                statuses[file_path] = f"failed to delete: {e}"
                logger.error(f"Failed to delete {path}: {e}")
                continue
            statuses[file_path] = STATUS_DELETED
            deleted.append(path)
            logger.info(f"Deleted {path}")

        self._after_removal(deleted, result)
        return statuses

    # =========================================================================
    # Quarantine
    # =========================================================================

    def move_to_quarantine(
        self,
        file_paths: list[str],
        root_path: str,
        result: DuplicateScanResult | None = None
    ) -> dict[str, str]:
        """
        Move files into the root's quarantine folder, keeping relative paths.

        Returns:
            Map of path -> "moved", "missing", "outside_root" or an error message.

        Raises:
            InputError: If file_paths or root_path is empty.
        """
        if not file_paths:
            raise InputError("No file paths provided")
        if not root_path:
            raise InputError("Root path is required")

        root = normalize_path(root_path)
        target_dir = quarantine_dir(root)
        statuses: dict[str, str] = {}
        moved: list[str] = []

        for file_path in file_paths:
            if not file_path:
                continue
            path = normalize_path(file_path)
            if not os.path.isfile(path):
                statuses[file_path] = STATUS_MISSING
                continue
            if not path_is_within(path, root) or path_is_within(path, target_dir):
                statuses[file_path] = STATUS_OUTSIDE_ROOT
                continue

            dest = _free_destination(
                f"{target_dir}/{os.path.relpath(path, root).replace(os.sep, '/')}", "quarantined"
            )
            try:
                Path(dest).parent.mkdir(parents=True, exist_ok=True)
                # Renames when possible, copies and removes across filesystems
                shutil.move(path, dest)
            except OSError as e:
                statuses[file_path] = f"move failed: {e}"
                logger.error(f"Failed to quarantine {path}: {e}")
                continue

            statuses[file_path] = STATUS_MOVED
            moved.append(path)
            logger.info(f"Quarantined {path} -> {dest}")

        self._after_removal(moved, result)
        return statuses

    def restore_from_quarantine(self, quarantine_paths: list[str], root_path: str) -> dict[str, str]:
        """
        Move quarantined files back to their original location.

        An occupied destination gets a ".restored.<unix time>" suffix
        instead of being overwritten.

        Returns:
            Map of quarantine path -> "restored", "not_in_quarantine" or an
            error message.

        Raises:
            InputError: If quarantine_paths or root_path is empty.
        """
        if not quarantine_paths:
            raise InputError("No file paths provided")
        if not root_path:
            raise InputError("Root path is required")

        root = normalize_path(root_path)
        source_dir = quarantine_dir(root)
        statuses: dict[str, str] = {}
        restored: list[str] = []

        for quarantine_path in quarantine_paths:
            if not quarantine_path:
                continue
            path = normalize_path(quarantine_path)
            if path == source_dir or not path_is_within(path, source_dir):
                statuses[quarantine_path] = STATUS_NOT_IN_QUARANTINE
                continue
            if not os.path.isfile(path):
                statuses[quarantine_path] = STATUS_MISSING
                continue

            relative = path[len(source_dir) + 1:]
            dest = _free_destination(f"{root}/{relative}", "restored")
            try:
                Path(dest).parent.mkdir(parents=True, exist_ok=True)
                shutil.move(path, dest)
            except OSError as e:
                statuses[quarantine_path] = f"restore failed: {e}"
                logger.error(f"Failed to restore {path}: {e}")
                continue

            statuses[quarantine_path] = STATUS_RESTORED
            restored.append(normalize_path(dest))
            logger.info(f"Restored {path} -> {dest}")

        # A restored path may still carry an entry from before it was quarantined
        if restored:
            self.cache_registry.invalidate_paths(restored)
        return statuses

    def list_quarantine(self, root_path: str) -> list[str]:
        """
        List quarantined files (normalized paths, sorted).

        Raises:
            InputError: If root_path is empty.
        """
        if not root_path:
            raise InputError("Root path is required")

        source_dir = quarantine_dir(root_path)
        files: list[str] = []
        for dirpath, dirnames, filenames in os.walk(source_dir):
            dirnames.sort()
            for name in sorted(filenames):
                files.append(normalize_path(os.path.join(dirpath, name)))
        return files

    def empty_quarantine(self, root_path: str) -> int:
        """
        Permanently delete every quarantined file.

        Returns:
            Number of files deleted.

        Raises:
            InputError: If root_path is empty.
        """
        count = 0
        for path in self.list_quarantine(root_path):
            try:
                os.remove(path)
            except OSError as e:
                logger.error(f"Failed to delete quarantined file {path}: {e}")
                continue
            count += 1

        source_dir = quarantine_dir(root_path)
        # Remove emptied subfolders bottom-up, keep the quarantine folder itself
        for dirpath, _, _ in sorted(os.walk(source_dir), key=lambda entry: len(entry[0]), reverse=True):
            if normalize_path(dirpath) != source_dir and not os.listdir(dirpath):
                os.rmdir(dirpath)

        logger.info(f"Emptied quarantine of {normalize_path(root_path)}: {count} file(s) deleted")
        return count
