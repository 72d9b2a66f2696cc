"""
Removal of local dump files once a run's uploads have settled.
"""

import logging
import os
from typing import Iterable, List

logger = logging.getLogger(__name__)

DUMP_SUFFIX = '.sql'


def is_dump_file(filename: str) -> bool:
    return filename.lower().endswith(DUMP_SUFFIX)


def remove_files(paths: Iterable[str]) -> List[str]:
    """
    Delete the given files, skipping any that are already gone.

    Returns:
        Paths that were deleted
    """
    removed = []
    for path in paths:
        if not os.path.isfile(path):
            continue
        try:
            os.remove(path)
            removed.append(path)
            logger.info(f"Deleted {os.path.basename(path)} (locally)")
        except OSError as e:
            logger.error(f"Failed to delete {path}: {e}")
    return removed


def sweep_directory(directory: str) -> List[str]:
    """
    Delete every .sql file (any case) directly inside directory.

    Returns:
        Paths that were deleted
    """
    try:
        names = sorted(os.listdir(directory))
    except OSError as e:
        logger.error(f"Could not read directory {directory}: {e}")
        return []

    return remove_files(
        os.path.join(directory, name) for name in names if is_dump_file(name)
    )


def cleanup_local_dumps(tracked_paths: Iterable[str], work_dir: str, sweep: bool = True) -> List[str]:
    """
    Remove this run's dump files, then optionally every dump in work_dir.

    Args:
        tracked_paths: Files created by the current run's jobs
        work_dir: Directory the dumps were written to
        sweep: Also delete untracked .sql files found in work_dir

    Returns:
        Paths that were deleted
    """
    removed = remove_files(tracked_paths)
    if sweep:
        removed.extend(sweep_directory(work_dir))
    return removed
