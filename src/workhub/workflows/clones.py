"""Clone directory layout under the clones root.

Final clones live at ``<root>/pr-<number>``; names never derive from
branch names, which may contain slashes. Provisioning clones into
``<root>/temp-<epoch-ms>-<hex>`` first because the request number is only
known after the request exists. The random suffix keeps concurrent
provisioning runs in the same millisecond out of each other's clones.
"""

import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional

from src.workhub.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class CloneDirectories:
    """Paths and filesystem operations for workspace clones.

    Attributes:
        root: Clones root directory.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, number: int) -> Path:
        return self.root / f"pr-{number}"

    def temp_path(self, now_ms: Optional[int] = None) -> Path:
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return self.root / f"temp-{now_ms}-{uuid.uuid4().hex[:8]}"

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExternalServiceError(
                f"Failed to create clones directory {self.root}: {exc}"
            ) from exc

    def exists(self, path: Path) -> bool:
        return path.exists()

    def remove(self, path: Path) -> None:
        """Remove a clone directory recursively.

        Raises:
            ExternalServiceError: If the directory cannot be removed.
        """
        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise ExternalServiceError(f"Failed to remove {path}: {exc}") from exc
        logger.info("Removed clone directory", extra={"path": str(path)})

    def move(self, source: Path, target: Path) -> bool:
        """Move ``source`` to ``target``, replacing an existing target.

        Returns:
            True if an existing target was removed first.
        """
        replaced = False
        if target.exists():
            logger.warning(
                "Clone directory already exists, replacing it",
                extra={"path": str(target)},
            )
            self.remove(target)
            replaced = True
        try:
            source.rename(target)
        except OSError as exc:
            raise ExternalServiceError(
                f"Failed to rename {source} to {target}: {exc}"
            ) from exc
        return replaced
