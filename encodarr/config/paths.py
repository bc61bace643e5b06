"""Source, scratch and destination path derivation."""

import re
import uuid
from pathlib import Path, PurePosixPath

from encodarr.config.models import EncodingProfile


def apply_path_mappings(path: str, profile: EncodingProfile) -> str:
    """Rewrite the first matching ``from`` prefix. At most one mapping applies."""
    for mapping in profile.path_mappings:
        if path.startswith(mapping.from_):
            return mapping.to + path[len(mapping.from_):]
    return path


def rename_stem(stem: str, profile: EncodingProfile) -> str:
    """Apply every file rename in order, each to the previous result.

    Each pattern replaces its first match only.
    """
    for rename in profile.file_renames:
        stem = re.sub(rename.pattern, rename.replacement, stem, count=1)
    return stem


class PathResolver:
    """Maps logical paths onto the data, transcode and output trees."""

    def __init__(self, data_dir: Path, transcode_dir: Path, output_dir: Path):
        self.data_dir = Path(data_dir)
        self.transcode_dir = Path(transcode_dir)
        self.output_dir = Path(output_dir)

    def source_path(self, path: str, profile: EncodingProfile) -> Path:
        mapped = apply_path_mappings(path, profile)
        # Joined, not resolved: an absolute logical path still lands under data_dir
        relative = PurePosixPath(mapped.lstrip("/"))
        return self.data_dir / relative

    def destination_dir(self, source_dir: Path) -> Path:
        try:
            return self.output_dir / Path(source_dir).relative_to(self.data_dir)
        except ValueError:
            return Path(source_dir)

    def destination_path(self, source_path: Path, profile: EncodingProfile) -> Path:
        source_path = Path(source_path)
        filename = f"{rename_stem(source_path.stem, profile)}.{profile.extension}"
        return self.destination_dir(source_path.parent) / filename

    def temp_path(self, profile: EncodingProfile) -> Path:
        return self.transcode_dir / f"{uuid.uuid4().hex}.{profile.extension}"
