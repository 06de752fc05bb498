"""Backend source packaging.

Prepares the staging tree the compiler runs against: a fresh copy of the
backend source plus a symlink to the shared vendor directory.

Key classes:
    SourceStager  - Clean + copy of the source tree into staging
    VendorLinker  - Idempotent vendor symlink creation
    StagingError  - Filesystem failure during clean, stage or link
"""

from .source import SourceStager, StagingError
from .vendor import VendorLinker

__all__ = [
    "SourceStager",
    "StagingError",
    "VendorLinker",
]
