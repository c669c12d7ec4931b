"""Hand parsed dives and matched photos over to a persistence layer

The store itself lives outside this package; anything providing the
methods of `DiveStore` / `PhotoStore` can receive an import.
"""

import dataclasses
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .matcher import PhotoAssignment
from .models import Dive, DiveEvent, DiveSample, DiveTank, ImportResult, TankPressure
from .photo_scanner import PhotoScanner, ScannedPhoto

logger = logging.getLogger(__name__)

Thumbnailer = Callable[[str, int], Optional[str]]


class DiveStore(Protocol):
    """Persistence operations needed to import dive logs"""

    def create_trip(self, name: str, location: str, date_start: str, date_end: str) -> int:
        ...

    def get_dives_for_trip(self, trip_id: int) -> List[Dive]:
        ...

    def insert_dive(self, dive: Dive) -> int:
        ...

    def insert_dive_samples_batch(self, dive_id: int, samples: List[DiveSample]) -> None:
        ...

    def insert_dive_events_batch(self, dive_id: int, events: List[DiveEvent]) -> None:
        ...

    def insert_tank_pressures_batch(self, dive_id: int, pressures: List[TankPressure]) -> None:
        ...

    def insert_dive_tanks_batch(self, dive_id: int, tanks: List[DiveTank]) -> None:
        ...


class PhotoStore(Protocol):
    """Persistence operations needed to import photos"""

    def insert_photo_full(
        self,
        trip_id: int,
        dive_id: Optional[int],
        photo: ScannedPhoto,
        raw_photo_id: Optional[int] = None
    ) -> int:
        ...

    def update_photo_thumbnail(self, photo_id: int, thumbnail_path: str) -> None:
        ...

    def delete_photo_by_path(self, file_path: str) -> None:
        ...

    def find_photo_by_base_filename(self, trip_id: int, base_filename: str) -> Optional[Any]:
        """Return a stored photo with `id` and `dive_id` attributes, or None"""
        ...


def import_to_store(store: DiveStore, result: ImportResult,
                    existing_trip_id: Optional[int] = None) -> int:
    """Persist every dive of `result` and return the trip id

    Dives are inserted in chronological order. When appending to an
    existing trip they are renumbered to follow the trip's last dive;
    otherwise a trip is created from the result and source numbers kept.
    Store exceptions propagate unchanged.
    """
    dives = sorted(result.dives, key=lambda d: (d.dive.date, d.dive.time))

    if existing_trip_id is None:
        trip_id = store.create_trip(result.trip_name, '', result.date_start, result.date_end)
        logger.info(f"Created trip '{result.trip_name}' ({trip_id})")
    else:
        trip_id = existing_trip_id

    existing = store.get_dives_for_trip(trip_id)
    max_dive_number = max((d.dive_number for d in existing), default=0)

    for i, imported in enumerate(dives):
        dive = dataclasses.replace(imported.dive, trip_id=trip_id)
        if existing_trip_id is not None:
            dive.dive_number = max_dive_number + i + 1

        dive_id = store.insert_dive(dive)

        if imported.samples:
            store.insert_dive_samples_batch(dive_id, imported.samples)
        if imported.events:
            store.insert_dive_events_batch(dive_id, imported.events)
        if imported.tank_pressures:
            store.insert_tank_pressures_batch(dive_id, imported.tank_pressures)
        if imported.tanks:
            store.insert_dive_tanks_batch(dive_id, imported.tanks)

    logger.info(f"Imported {len(dives)} dives into trip {trip_id}")
    return trip_id


def base_filename(filename: str) -> str:
    """Lower-cased file name without extension, shared by a RAW and its exports"""
    return os.path.splitext(os.path.basename(filename))[0].lower()


def import_photos(
    store: PhotoStore,
    trip_id: int,
    assignments: Sequence[PhotoAssignment],
    overwrite: bool = False,
    thumbnailer: Optional[Thumbnailer] = None,
    scanner: Optional[PhotoScanner] = None
) -> int:
    """Insert assigned photos and return how many were stored

    Originals go in first so that processed exports (TIFF/PNG) can be
    linked to the RAW sharing their base file name, whether that RAW is in
    this batch or already stored. A linked export takes the RAW's dive.
    Files that cannot be scanned are skipped.
    """
    scanner = scanner or PhotoScanner()

    if overwrite:
        for assignment in assignments:
            store.delete_photo_by_path(assignment.file_path)

    scanned: List[Tuple[PhotoAssignment, ScannedPhoto]] = []
    for assignment in assignments:
        photo = scanner.scan_single_file(assignment.file_path)
        if photo is None:
            logger.warning(f"Skipping unreadable photo {assignment.file_path}")
            continue
        scanned.append((assignment, photo))

    count = 0
    originals: Dict[str, Tuple[int, Optional[int]]] = {}

    for assignment, photo in scanned:
        if photo.is_processed:
            continue
        photo_id = store.insert_photo_full(trip_id, assignment.dive_id, photo)
        _store_thumbnail(store, thumbnailer, photo, photo_id)
        originals[base_filename(photo.filename)] = (photo_id, assignment.dive_id)
        count += 1

    for assignment, photo in scanned:
        if not photo.is_processed:
            continue

        base_name = base_filename(photo.filename)
        raw_photo_id = None
        raw_dive_id = None
        if base_name in originals:
            raw_photo_id, raw_dive_id = originals[base_name]
        else:
            existing = store.find_photo_by_base_filename(trip_id, base_name)
            if existing is not None:
                raw_photo_id, raw_dive_id = existing.id, existing.dive_id

        dive_id = raw_dive_id if raw_dive_id is not None else assignment.dive_id
        photo_id = store.insert_photo_full(trip_id, dive_id, photo, raw_photo_id=raw_photo_id)
        _store_thumbnail(store, thumbnailer, photo, photo_id)
        count += 1

    logger.info(f"Imported {count} photos into trip {trip_id}")
    return count


def _store_thumbnail(store: PhotoStore, thumbnailer: Optional[Thumbnailer],
                     photo: ScannedPhoto, photo_id: int) -> None:
    if thumbnailer is None:
        return
    thumbnail_path = thumbnailer(photo.file_path, photo_id)
    if thumbnail_path:
        store.update_photo_thumbnail(photo_id, thumbnail_path)
