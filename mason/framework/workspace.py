"""Owner of the isolated working directory for one pipeline run.

The workspace root holds an ephemeral GOPATH (`<root>/go`) used as the module
resolution root for every subprocess the run spawns. It is the only place in
the codebase that creates temporary directories.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile

from mason.foundation.errors import FileIOError

GOPATH_DIRNAME = "go"
GOPATH_SUBDIRS = ("src", "bin", "pkg")


class Workspace:
    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger(__name__)
        self.root: str | None = None
        self.gopath: str | None = None
        self.owned = False

    def acquire(self, explicit_path: str | None = None) -> tuple[str, str]:
        """
        Allocate (or adopt) the workspace and lay out the isolated GOPATH.

        An empty `explicit_path` allocates a uniquely named temp directory that
        `release()` will delete. A non-empty path is used verbatim and is never
        deleted by the workspace.
        """

        if self.root is not None:
            raise RuntimeError(f"Workspace already acquired at {self.root}")

        try:
            if explicit_path:
                root = os.path.abspath(explicit_path)
                os.makedirs(root, exist_ok=True)
                owned = False
                self._logger.info("Using persistent workspace %s", root)
            else:
                root = tempfile.mkdtemp(prefix="mason-")
                owned = True
                self._logger.debug("Created temp workspace %s", root)

            gopath = os.path.join(root, GOPATH_DIRNAME)
            for sub in GOPATH_SUBDIRS:
                os.makedirs(os.path.join(gopath, sub), exist_ok=True)
        except OSError as exc:
            raise FileIOError(f"Failed to prepare workspace: {exc}") from exc

        self.root = root
        self.gopath = gopath
        self.owned = owned
        return root, gopath

    def release(self) -> None:
        if self.root is None:
            return
        if self.owned:
            shutil.rmtree(self.root, ignore_errors=True)
            self._logger.debug("Removed temp workspace %s", self.root)
        self.root = None
        self.gopath = None
        self.owned = False

    def env(self) -> dict[str, str]:
        """Base environment overlay isolating module resolution to this workspace."""
        return {"GOPATH": self._require_gopath()}

    def checkout_dir(self, package: str) -> str:
        return os.path.join(self._require_gopath(), "src", *package.strip("/").split("/"))

    def tool_path(self, name: str) -> str:
        return os.path.join(self._require_gopath(), "bin", name)

    def _require_gopath(self) -> str:
        if self.gopath is None:
            raise RuntimeError("Workspace has not been acquired")
        return self.gopath

    def __enter__(self) -> "Workspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
