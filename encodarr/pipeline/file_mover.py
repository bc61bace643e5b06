import logging
import shutil
from pathlib import Path
from typing import Optional, Union

from encodarr.domain.errors import RelocationFailed

Log = Union[logging.Logger, logging.LoggerAdapter]


def relocate(temp_path: Path, dest_path: Path, logger: Optional[Log] = None) -> Path:
    """Copy a finished encode to its destination, then delete the temp file.

    Destination directories are created as needed and an existing file at the
    destination is overwritten. The temp file lives on a scratch volume, so
    this is copy-then-delete rather than a rename.

    Raises:
        RelocationFailed: the copy failed. The temp file is left in place.
    """
    logger = logger or logging.getLogger(__name__)
    temp_path = Path(temp_path)
    dest_path = Path(dest_path)

    try:
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(temp_path, dest_path)
    except OSError as e:
        logger.error(f"Unable to move file to final location. Encoded output kept at {temp_path}")
        raise RelocationFailed(temp_path, dest_path, str(e)) from e

    try:
        temp_path.unlink()
    except OSError as e:
        logger.warning(f"Failed to remove temp file {temp_path}: {e}")

    logger.info(f"Successfully created {dest_path}")
    return dest_path
