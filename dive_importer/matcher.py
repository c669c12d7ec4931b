"""Logic for matching photo groups to dives by order"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from .clustering import PhotoGroup, group_photos_by_time
from .config import DEFAULT_GAP_MINUTES
from .models import Dive
from .photo_scanner import PhotoScanner, ScannedPhoto

logger = logging.getLogger(__name__)


@dataclass
class PhotoAssignment:
    """A photo file and the dive it should be stored under"""
    file_path: str
    dive_id: Optional[int] = None


@dataclass
class PhotoImportPreview:
    """Proposed photo import before anything is stored"""
    groups: List[PhotoGroup] = field(default_factory=list)
    unmatched_photos: List[ScannedPhoto] = field(default_factory=list)
    photos_without_time: List[ScannedPhoto] = field(default_factory=list)

    def assignments(self) -> List[PhotoAssignment]:
        """Every scanned photo, matched ones carrying their suggested dive"""
        result = [
            PhotoAssignment(file_path=photo.file_path, dive_id=group.suggested_dive_id)
            for group in self.groups
            for photo in group.photos
        ]
        for photo in self.unmatched_photos + self.photos_without_time:
            result.append(PhotoAssignment(file_path=photo.file_path))
        return result


class DiveMatcher:
    """Matches photo groups to dives by position

    Timestamps are never compared with dive times: the n-th group of
    photos belongs to the n-th dive in dive number order.
    """

    def __init__(self, dives: Sequence[Dive]):
        self.dives = sorted(dives, key=lambda d: d.dive_number)

    def match_groups(self, groups: Sequence[PhotoGroup]) -> List[PhotoGroup]:
        """Return the groups with suggestions filled in; groups past the last dive stay unmatched"""
        matched = []
        for i, group in enumerate(groups):
            if i < len(self.dives):
                dive = self.dives[i]
                group = dataclasses.replace(
                    group,
                    suggested_dive_id=dive.id,
                    suggested_dive_number=dive.dive_number
                )
            matched.append(group)
        return matched

    def format_group_info(self, group: PhotoGroup) -> str:
        """Format group information for display"""
        if group.suggested_dive_number is None:
            target = "no matching dive"
        else:
            target = f"Dive #{group.suggested_dive_number}"

        duration = f"{group.duration_minutes} minutes" if group.duration_minutes is not None else "unknown"
        return (f"{len(group.photos)} photos -> {target}\n"
                f"  From: {group.start_time or 'unknown'}\n"
                f"  To: {group.end_time or 'unknown'}\n"
                f"  Duration: {duration}")


def create_import_preview(
    paths: Iterable[str],
    dives: Sequence[Dive],
    gap_minutes: int = DEFAULT_GAP_MINUTES,
    scanner: Optional[PhotoScanner] = None
) -> PhotoImportPreview:
    """Scan photos, group them and match the groups to `dives`

    Photos from groups beyond the number of dives are reported as unmatched.
    """
    scanner = scanner or PhotoScanner()
    photos = scanner.scan_photos(paths)

    groups, photos_without_time = group_photos_by_time(photos, gap_minutes)
    groups = DiveMatcher(dives).match_groups(groups)

    dive_count = len(dives)
    unmatched = [photo for group in groups[dive_count:] for photo in group.photos]
    if unmatched:
        logger.info(f"{len(groups) - dive_count} photo groups have no dive to match")

    return PhotoImportPreview(
        groups=groups[:dive_count],
        unmatched_photos=unmatched,
        photos_without_time=photos_without_time
    )
