"""Isolated build workspaces.

One directory per request under a shared root, named from a random UUID so
concurrent requests never share a path.
"""

import logging
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from deployer.errors import ProvisioningError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Workspace:
    """A provisioned build directory owned by a single request."""

    id: str
    root_path: Path
    variant: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def resolve(self, relative: str) -> Path:
        """Resolve a path inside the workspace, refusing anything outside it."""
        root = self.root_path.resolve()
        target = (root / relative).resolve()
        if target != root and root not in target.parents:
            raise ValueError(f"Path escapes workspace: {relative}")
        return target


@dataclass
class Scaffold:
    """Files (relative path -> content) and directories a toolchain expects."""

    files: dict[str, str] = field(default_factory=dict)
    directories: list[str] = field(default_factory=list)

    def paths(self) -> list[str]:
        return sorted(set(self.directories) | set(self.files))


class WorkspaceProvisioner:
    """Creates workspaces and materializes project scaffolds into them."""

    def __init__(self, root: Path, prefix: str = "umi-"):
        self.root = Path(root)
        self.prefix = prefix

    def allocate(self, variant: str) -> Workspace:
        """Create an empty, uniquely named workspace directory."""
        workspace_id = f"{self.prefix}{variant}-{uuid.uuid4().hex}"
        root_path = self.root / workspace_id

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            root_path.mkdir(exist_ok=False)
        except OSError as e:
            raise ProvisioningError(f"Could not create workspace: {e}") from e

        logger.info(f"Created workspace {root_path}")
        return Workspace(id=workspace_id, root_path=root_path, variant=variant)

    def provision(self, variant: str, scaffold: Scaffold) -> Workspace:
        """Allocate a workspace and write the scaffold into it.

        Any failure removes the partially written tree before raising.

        Raises:
            ProvisioningError: Disk, permission or path error
        """
        workspace = self.allocate(variant)

        try:
            self.populate(workspace, scaffold)
        except ProvisioningError:
            shutil.rmtree(workspace.root_path, ignore_errors=True)
            raise
        return workspace

    def populate(self, workspace: Workspace, scaffold: Scaffold) -> None:
        """Write the scaffold into an allocated workspace.

        Raises:
            ProvisioningError: Disk, permission or path error
        """
        try:
            self._materialize(workspace, scaffold)
        except (OSError, ValueError) as e:
            raise ProvisioningError(f"Could not write workspace scaffold: {e}") from e

        logger.debug(
            f"Scaffolded {len(scaffold.files)} files into {workspace.id}: {scaffold.paths()}"
        )

    @staticmethod
    def _materialize(workspace: Workspace, scaffold: Scaffold) -> None:
        for directory in scaffold.directories:
            workspace.resolve(directory).mkdir(parents=True, exist_ok=True)

        for relative, content in scaffold.files.items():
            if PurePosixPath(relative).is_absolute():
                raise ValueError(f"Scaffold path must be relative: {relative}")
            target = workspace.resolve(relative)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
