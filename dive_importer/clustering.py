"""Group photos into bursts separated by long pauses"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from .photo_scanner import ScannedPhoto

logger = logging.getLogger(__name__)

CAPTURE_TIME_FORMAT = '%Y-%m-%dT%H:%M:%S'


def parse_capture_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, CAPTURE_TIME_FORMAT)
    except ValueError:
        return None


@dataclass
class PhotoGroup:
    """Photos taken close together, presumably during one dive"""
    photos: List[ScannedPhoto] = field(default_factory=list)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_minutes: Optional[int] = None
    suggested_dive_id: Optional[int] = None
    suggested_dive_number: Optional[int] = None

    @classmethod
    def from_photos(cls, photos: List[ScannedPhoto]) -> 'PhotoGroup':
        start_time = photos[0].capture_time if photos else None
        end_time = photos[-1].capture_time if photos else None

        duration_minutes = None
        start, end = parse_capture_time(start_time), parse_capture_time(end_time)
        if start is not None and end is not None:
            duration_minutes = int((end - start).total_seconds() // 60)

        return cls(
            photos=photos,
            start_time=start_time,
            end_time=end_time,
            duration_minutes=duration_minutes
        )


def group_photos_by_time(
    photos: Sequence[ScannedPhoto],
    gap_minutes: int
) -> Tuple[List[PhotoGroup], List[ScannedPhoto]]:
    """Split photos into groups wherever consecutive shots are `gap_minutes` or more apart

    Returns the groups in time order plus the photos that have no capture
    time. A photo whose time cannot be parsed stays in the current group.
    """
    gap = timedelta(minutes=gap_minutes)
    timed = [p for p in photos if p.capture_time is not None]
    without_time = [p for p in photos if p.capture_time is None]

    groups: List[PhotoGroup] = []
    if not timed:
        return groups, without_time

    timed.sort(key=lambda p: p.capture_time)

    current = [timed[0]]
    for photo in timed[1:]:
        last_time = parse_capture_time(current[-1].capture_time)
        photo_time = parse_capture_time(photo.capture_time)

        if last_time is None or photo_time is None or photo_time - last_time < gap:
            current.append(photo)
        else:
            groups.append(PhotoGroup.from_photos(current))
            current = [photo]

    groups.append(PhotoGroup.from_photos(current))

    logger.debug(
        f"Grouped {len(timed)} photos into {len(groups)} groups, "
        f"{len(without_time)} without capture time"
    )
    return groups, without_time
