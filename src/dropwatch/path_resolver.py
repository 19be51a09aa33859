"""Thread-safe mapping of paths to the watched root that contains them."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Optional

from .exceptions import RootNotFoundError, RootAlreadyExistsError
from .models import WatchedRoot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Result of resolving a path against the watched roots."""
    root: WatchedRoot
    relative_path: Path


class PathResolver:
    """
    Maps absolute paths to their owning watched root.

    Nested roots are allowed; the longest root that contains a path wins.
    Containment is checked per path segment, so /data/foo never owns
    /data/foobar.
    """

    def __init__(self, roots: Optional[Iterable[WatchedRoot]] = None):
        """
        Initialize the resolver.

        Args:
            roots: Initial watched roots
        """
        self._roots: Dict[Path, WatchedRoot] = {}
        self._lock = threading.RLock()
        for root in roots or ():
            self._roots[root.path] = root

    def add_root(self, path: Path, must_exist: bool = True) -> WatchedRoot:
        """
        Add a root folder.

        Args:
            path: Path to the root folder
            must_exist: If True, raise error if path doesn't exist

        Returns:
            The new WatchedRoot

        Raises:
            RootNotFoundError: If must_exist and path doesn't exist
            RootAlreadyExistsError: If the root is already configured
        """
        root = WatchedRoot.from_path(path)

        if must_exist and not root.path.is_dir():
            raise RootNotFoundError(f"Root folder does not exist: {root.path}")

        with self._lock:
            if root.path in self._roots:
                raise RootAlreadyExistsError(f"Root already being watched: {root.path}")
            self._roots[root.path] = root
            return root

    def remove_root(self, path: Path) -> bool:
        """
        Remove a root folder.

        Returns:
            True if the root was removed, False if not found
        """
        path = Path(path).resolve()

        with self._lock:
            return self._roots.pop(path, None) is not None

    def get_roots(self) -> FrozenSet[WatchedRoot]:
        """Get the current set of watched roots."""
        with self._lock:
            return frozenset(self._roots.values())

    def get_root(self, path: Path) -> Optional[WatchedRoot]:
        """Get the watched root configured at exactly this path."""
        with self._lock:
            return self._roots.get(Path(path).resolve())

    def resolve(self, path: Path) -> Optional[Resolution]:
        """
        Find the watched root that contains the given path.

        Args:
            path: Absolute path to look up

        Returns:
            Resolution with the owning root and the relative path, or None
            if no configured root contains the path
        """
        path = Path(path)
        best: Optional[WatchedRoot] = None

        with self._lock:
            for root_path, root in self._roots.items():
                if path != root_path and root_path not in path.parents:
                    continue
                if best is None or len(root_path.parts) > len(best.path.parts):
                    best = root

        if best is None:
            return None
        return Resolution(root=best, relative_path=path.relative_to(best.path))

    def relative_path_for(self, path: Path, root: Optional[WatchedRoot] = None) -> Path:
        """
        Relative path of a file under its owning root.

        An explicit root overrides the longest-prefix lookup. Falls back to
        the absolute path, with a warning, when no root contains it.
        """
        if root is not None and root.path in Path(path).parents:
            return Path(path).relative_to(root.path)
        resolution = self.resolve(path)
        if resolution is None:
            logger.warning(f"Path is not under any watched root: {path}")
            return Path(path)
        return resolution.relative_path

    def __len__(self) -> int:
        with self._lock:
            return len(self._roots)

    def __contains__(self, path: Path) -> bool:
        """Check if a path is a configured root."""
        return self.get_root(path) is not None
