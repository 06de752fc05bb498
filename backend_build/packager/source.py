"""Source staging for backend compilation.

Copies the backend source tree into an ephemeral staging directory that the
compiler runs against. The staging directory is always wiped before it is
repopulated so no stale files from a previous run survive.
"""

import asyncio
import shutil
from pathlib import Path

from backend_build.utils import console


class StagingError(Exception):
    """Raised when cleaning, staging or linking the source tree fails."""

    def __init__(self, message: str, path: str | Path = ""):
        self.path = str(path)
        super().__init__(message)


def _remove_tree(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    shutil.rmtree(path)


class SourceStager:
    """Resets and repopulates the staging directory from the true source tree."""

    def __init__(self, source_dir: str | Path, staging_dir: str | Path):
        self.source_dir = Path(source_dir)
        self.staging_dir = Path(staging_dir)

    async def clean(self) -> None:
        """Delete the staging directory tree.

        A staging directory that does not exist is already clean.

        Raises:
            StagingError: If the tree exists but cannot be removed.
        """
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _remove_tree, self.staging_dir)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StagingError(
                f"Failed to clean staging directory {self.staging_dir}: {exc}",
                path=self.staging_dir,
            ) from exc

        console.print(f"  [dim]Removed {self.staging_dir}[/dim]")

    async def populate(self) -> None:
        """Copy every file of the source tree into the (absent) staging directory.

        Relative paths and symlinks are preserved.

        Raises:
            StagingError: If the source is missing or unreadable, the staging
                directory still exists, or any copy fails.
        """
        if not self.source_dir.is_dir():
            raise StagingError(
                f"Source directory not found or not a directory: {self.source_dir}",
                path=self.source_dir,
            )

        try:
            self.staging_dir.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StagingError(
                f"Cannot create staging parent {self.staging_dir.parent}: {exc}",
                path=self.staging_dir.parent,
            ) from exc

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: shutil.copytree(self.source_dir, self.staging_dir, symlinks=True),
            )
        except FileExistsError as exc:
            raise StagingError(
                f"Staging directory was not cleaned before staging: {self.staging_dir}",
                path=self.staging_dir,
            ) from exc
        except (shutil.Error, OSError) as exc:
            raise StagingError(
                f"Failed to copy {self.source_dir} into {self.staging_dir}: {exc}",
                path=self.source_dir,
            ) from exc

        console.print(
            f"  [green]+[/green] Staged [bold]{self.source_dir}[/bold] "
            f"-> [bold]{self.staging_dir}[/bold]"
        )

    async def stage(self) -> None:
        """Clean the staging directory and repopulate it from source."""
        await self.clean()
        await self.populate()
