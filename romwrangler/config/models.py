from __future__ import annotations

import os
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_REGION_PRIORITY = ["USA", "World", "USA, Europe", "Europe", "Japan"]


class _BaseConfigModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class EngineConfig(_BaseConfigModel):
    """User settings consumed by the pipeline and the CLI."""

    source_dirs: List[str] = Field(default_factory=list)
    roms_subdir: str = "roms"
    output_dir: Optional[str] = None
    chdman_path: Optional[str] = None
    seven_zip_path: Optional[str] = None
    aliases: Dict[str, str] = Field(default_factory=dict)
    concurrency: int = 1
    archive_dir_name: str = "_archive"
    move_files: bool = True
    clean_names: bool = True
    delete_archive: bool = False
    region_priority: List[str] = Field(default_factory=lambda: list(DEFAULT_REGION_PRIORITY))

    @field_validator("concurrency")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(1, int(value))

    @field_validator("archive_dir_name")
    @classmethod
    def _plain_name(cls, value: str) -> str:
        value = value.strip()
        if not value or os.sep in value or (os.altsep and os.altsep in value):
            raise ValueError("archive_dir_name must be a single folder name")
        return value

    def rom_dirs(self) -> List[str]:
        """Effective source roots: each source dir joined with roms_subdir."""
        if not self.roms_subdir:
            return list(self.source_dirs)
        return [os.path.join(d, self.roms_subdir) for d in self.source_dirs]

    def archive_dir(self) -> Optional[str]:
        roots = self.rom_dirs()
        if not roots:
            return None
        return os.path.join(roots[0], self.archive_dir_name)

    def destination_dir(self) -> Optional[str]:
        if self.output_dir:
            return self.output_dir
        roots = self.rom_dirs()
        return roots[0] if roots else None
