"""
Logo store backed by a directory of <identity>.png files.
"""
from pathlib import Path
import logging


logger = logging.getLogger(__name__)

LOGO_SUFFIX = ".png"


class LogoStore:
    """Logo-existence collaborator for the playlist renderer."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def exists(self, identity: str) -> bool:
        path = self.path_for(identity + LOGO_SUFFIX)
        return path is not None and path.is_file()

    def path_for(self, filename: str) -> Path | None:
        """
        Resolve a logo file name inside the store

        Returns:
            The resolved path, or None if the name escapes the directory
        """
        if not filename or "/" in filename or "\\" in filename or filename in (".", ".."):
            logger.debug("Rejected logo file name: %r", filename)
            return None
        return self.directory / filename
