"""
File lifecycle of a WorkItem.

Folder membership is the persisted state of every work item. There is no
database and no journal: an operator sees which stage an item is in by
looking at the folders.

State machine::

    Incoming ──claim()──► Processing ──complete(verdict)──► Success
        │                                         └───────► Error
        └──reject() (foreign file)──────────────────────────► Error

Rules:
    - Transitions are moves, never copies.
    - The destination overwrites a stale same-named file (last write wins).
    - Success and Error are terminal.
    - The only unrecoverable window is a move interrupted after the
      stale destination was removed; that is accepted.

Within one filesystem ``os.replace`` is atomic; across filesystems
``shutil.move`` copies then deletes.
"""

from __future__ import annotations

import errno
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from dropwatch.core.context import RunContext, Stage
from dropwatch.core.errors import FileLifecycleError, NotFound
from dropwatch.framework.logging import get_logger

if TYPE_CHECKING:
    from dropwatch.core.status_log import StatusLog

logger = get_logger(__name__)


def move_to_folder(source: Path | str, destination_dir: Path | str) -> Path:
    """Move ``source`` into ``destination_dir`` keeping its file name.

    A file of the same name already at the destination is deleted first.

    Returns:
        The new path of the file.

    Raises:
        NotFound: the source file or the destination folder does not exist.
        FileLifecycleError: the delete or move itself failed.
    """
    source = Path(source)
    destination_dir = Path(destination_dir)

    if not source.is_file():
        raise NotFound(f"No such file={source}").with_context(path=str(source))
    if not destination_dir.is_dir():
        raise NotFound(f"No such folder={destination_dir}").with_context(path=str(destination_dir))

    target = destination_dir / source.name

    try:
        if target.exists():
            target.unlink()
        try:
            os.replace(source, target)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            shutil.move(str(source), str(target))
    except OSError as e:
        raise FileLifecycleError(
            f"Source={source} TargetFolder={destination_dir}, Err={e}",
            cause=e,
        ).with_context(path=str(source)) from e

    logger.debug("lifecycle.moved", source=str(source), target=str(target))
    return target


class FileLifecycle:
    """Stage-aware moves for one RunContext.

    Every move is written to the status log before it happens, so a
    stranded item can be traced from the log alone.
    """

    def __init__(self, context: RunContext, status_log: StatusLog | None = None) -> None:
        self.context = context
        self.status_log = status_log

    def _move(self, source: Path, stage: Stage) -> Path:
        folder = self.context.folder_for(stage)
        if self.status_log is not None:
            self.status_log.record(f"Info: Moving File={source} to folder={folder}")
        return move_to_folder(source, folder)

    def claim(self, incoming_path: Path) -> Path:
        """Incoming → Processing."""
        return self._move(Path(incoming_path), Stage.PROCESSING)

    def complete(self, processing_path: Path, *, success: bool) -> Path:
        """Processing → Success or Error."""
        return self._move(Path(processing_path), Stage.SUCCESS if success else Stage.ERROR)

    def reject(self, path: Path) -> Path:
        """Any stage → Error. Used for foreign files found in Incoming."""
        return self._move(Path(path), Stage.ERROR)

    def stage_of(self, filename: str) -> Stage | None:
        """Stage whose folder currently holds ``filename``, if any."""
        for stage in Stage:
            if self.context.path_in(stage, filename).is_file():
                return stage
        return None

    def list_stage(self, stage: Stage) -> list[Path]:
        """Files in a stage folder, sorted by name."""
        folder = self.context.folder_for(stage)
        if not folder.is_dir():
            return []
        return sorted(p for p in folder.iterdir() if p.is_file())
