"""Vendor directory linking.

The shared vendor directory is linked into the staging tree rather than copied.
"""

import asyncio
import os
from pathlib import Path

from backend_build.utils import console, print_warning

from .source import StagingError


class VendorLinker:
    """Creates the ``<staging>/vendor`` symlink to the canonical vendor directory.

    Linking is idempotent: when the link path already exists (EEXIST) the
    call succeeds without touching it, so repeated runs do not fail merely
    because a previous run already linked the directory.
    """

    def __init__(self, vendor_dir: str | Path, link_path: str | Path):
        self.vendor_dir = Path(vendor_dir)
        self.link_path = Path(link_path)

    async def link(self) -> None:
        """Create the vendor symlink.

        Raises:
            StagingError: For any filesystem error other than "already exists".
        """
        if not self.vendor_dir.exists():
            print_warning(f"  Vendor directory does not exist: {self.vendor_dir}")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: os.symlink(self.vendor_dir, self.link_path, target_is_directory=True),
            )
        except FileExistsError:
            console.print(f"  [dim]Vendor link already present at {self.link_path}[/dim]")
            return
        except OSError as exc:
            raise StagingError(
                f"Failed to link {self.vendor_dir} into {self.link_path}: {exc}",
                path=self.link_path,
            ) from exc

        console.print(
            f"  [green]+[/green] Linked [bold]{self.link_path}[/bold] "
            f"-> [bold]{self.vendor_dir}[/bold]"
        )
