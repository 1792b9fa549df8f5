"""Workspace cleanup.

Every workspace is deleted twice over: immediately by the request that
owns it (success and error paths alike), and by a delayed fallback task
scheduled when it is created, in case the request never reaches its own
cleanup. Both paths tolerate the tree already being gone.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional

from deployer.pipeline.workspace import Workspace

logger = logging.getLogger(__name__)


def remove_workspace_tree(path: Path) -> bool:
    """Recursively delete a workspace directory.

    Returns:
        True if something was deleted, False if the path did not exist
    """
    path = Path(path)
    if not path.exists():
        return False

    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        # Removed concurrently by the other cleanup path
        return False

    logger.debug(f"Cleaned up workspace directory: {path}")
    return True


class CleanupManager:
    """Tracks live workspaces and their fallback deletion timers.

    Tree deletion runs in a worker thread, never on the event loop.
    """

    def __init__(self, delay_seconds: float = 300.0):
        self.delay_seconds = delay_seconds
        self._pending: dict[str, tuple[Workspace, asyncio.Task]] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_tracked(self, workspace: Workspace) -> bool:
        return workspace.id in self._pending

    def track(self, workspace: Workspace) -> None:
        """Schedule the fallback deletion of a freshly created workspace."""
        task = asyncio.create_task(
            self._delayed_remove(workspace), name=f"cleanup-{workspace.id}"
        )
        self._pending[workspace.id] = (workspace, task)

    async def release(self, workspace: Workspace) -> None:
        """Delete the workspace now and cancel its fallback timer.

        Called from ``finally`` blocks, including while the owning task is
        being cancelled. The deletion is shielded so a second cancellation
        cannot interrupt it; in that case the fallback timer stays armed.
        """
        entry = self._pending.pop(workspace.id, None)
        try:
            await asyncio.shield(asyncio.to_thread(remove_workspace_tree, workspace.root_path))
        except OSError as e:
            # Leave the fallback armed if the tree could not be removed.
            logger.error(f"Failed to clean up workspace {workspace.id}: {e}")
            if entry is not None:
                self._pending[workspace.id] = entry
            return
        except asyncio.CancelledError:
            if entry is not None:
                self._pending[workspace.id] = entry
            raise

        if entry is not None:
            entry[1].cancel()

    async def _delayed_remove(self, workspace: Workspace) -> None:
        try:
            await asyncio.sleep(self.delay_seconds)
        except asyncio.CancelledError:
            return

        self._pending.pop(workspace.id, None)
        try:
            if await asyncio.to_thread(remove_workspace_tree, workspace.root_path):
                logger.warning(
                    f"Fallback sweep removed abandoned workspace {workspace.id}"
                )
        except OSError as e:
            logger.error(f"Fallback cleanup failed for {workspace.id}: {e}")

    async def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel pending timers and remove the workspaces they guarded."""
        entries = list(self._pending.values())
        self._pending.clear()
        if not entries:
            return

        for _, task in entries:
            task.cancel()

        results = await asyncio.gather(
            *[asyncio.to_thread(remove_workspace_tree, w.root_path) for w, _ in entries],
            return_exceptions=True,
        )
        for (workspace, _), result in zip(entries, results):
            if isinstance(result, OSError):
                logger.error(f"Failed to clean up workspace {workspace.id} on shutdown: {result}")

        await asyncio.wait([task for _, task in entries], timeout=timeout)
        logger.info(f"Cleanup manager stopped, swept {len(entries)} workspaces")
