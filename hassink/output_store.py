"""Filesystem storage for the most recently rendered image of each page."""

import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Tuple

from .config import PageConfig
from .errors import StorageNotFoundError

logger = logging.getLogger(__name__)


class OutputStore:
    """Reads and writes rendered images at '<output_path>.<image_format>'"""

    def write(self, page_config: PageConfig, image_data: bytes) -> Path:
        """Write an image so that readers never see a partially written file"""
        target = page_config.output_file
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(image_data)
            os.replace(tmp_name, target)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info(f"Saved image: {target} ({len(image_data)} bytes)")
        return target

    def read(self, page_config: PageConfig) -> Tuple[bytes, datetime]:
        """Return the stored image and its modification time (UTC)"""
        target = page_config.output_file
        try:
            with open(target, 'rb') as f:
                data = f.read()
                mtime = os.fstat(f.fileno()).st_mtime
        except FileNotFoundError:
            raise StorageNotFoundError(f"No image stored at {target}") from None
        return data, datetime.fromtimestamp(mtime, tz=timezone.utc)

    def clear(self, page_config: PageConfig):
        """Remove the page's cached image and, when it holds nothing else, its directory.

        The working directory and filesystem roots are never removed. A
        missing directory is fine.
        """
        target = page_config.output_file
        directory = target.parent
        try:
            others = [entry for entry in directory.iterdir() if entry.name != target.name]
        except FileNotFoundError:
            return

        # Path('.').parent and Path('/').parent are the paths themselves
        if others or directory.parent == directory:
            target.unlink(missing_ok=True)
            logger.info(f"Deleted cached output {target}")
            return

        shutil.rmtree(directory)
        logger.info(f"Deleted cached output in {directory}")
