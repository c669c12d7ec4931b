"""Settings for photo scanning and grouping"""

from dataclasses import dataclass
from typing import Tuple

DEFAULT_GAP_MINUTES = 60


@dataclass(frozen=True)
class ScanSettings:
    """Options controlling how photos are found and grouped

    Attributes:
        gap_minutes: Minimum gap between consecutive photos that starts a new group
        recursive: Descend into subdirectories of scanned folders
        excluded_folders: Directory names skipped while walking
        raw_preview_scan_limit: Bytes of a RAW file searched for an embedded JPEG
        raw_preview_max_file_size: RAW files larger than this get no preview
        raw_preview_min_jpeg_size: Embedded JPEGs this small are ignored as thumbnails
    """
    gap_minutes: int = DEFAULT_GAP_MINUTES
    recursive: bool = True
    excluded_folders: Tuple[str, ...] = ()
    raw_preview_scan_limit: int = 60_000_000
    raw_preview_max_file_size: int = 100_000_000
    raw_preview_min_jpeg_size: int = 10_000
