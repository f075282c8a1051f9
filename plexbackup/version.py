# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Version and build metadata.

Packagers can stamp a build by exporting PLEXBACKUP_BUILD_REVISION,
PLEXBACKUP_BUILD_BY and PLEXBACKUP_BUILD_DATE; unset values read "unknown".
The environment is read once, on first access.
"""

import os
from dataclasses import dataclass
from functools import lru_cache

__version__ = "0.1.0"

UNKNOWN = "unknown"


@dataclass(frozen=True)
class BuildInfo:
    version: str
    revision: str = UNKNOWN
    built_by: str = UNKNOWN
    built_at: str = UNKNOWN

    def summary(self) -> str:
        return f"plexbackup {self.version} ({self.revision}) built by {self.built_by} on {self.built_at}"


@lru_cache(maxsize=None)
def get_build_info() -> BuildInfo:
    return BuildInfo(
        version=__version__,
        revision=os.getenv("PLEXBACKUP_BUILD_REVISION") or UNKNOWN,
        built_by=os.getenv("PLEXBACKUP_BUILD_BY") or UNKNOWN,
        built_at=os.getenv("PLEXBACKUP_BUILD_DATE") or UNKNOWN,
    )
