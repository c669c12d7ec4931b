"""Find photo files and read their metadata"""

import logging
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .config import ScanSettings
from .exif_resolver import ExifFusionResolver

logger = logging.getLogger(__name__)

PROCESSED_EXTENSIONS = {'.png', '.tiff', '.tif'}
RAW_EXTENSIONS = {'.raw', '.cr2', '.cr3', '.nef', '.arw', '.dng', '.orf', '.rw2'}
IMAGE_EXTENSIONS = {'.jpg', '.jpeg'} | PROCESSED_EXTENSIONS | RAW_EXTENSIONS

JPEG_SOI = b'\xff\xd8'
JPEG_EOI = b'\xff\xd9'


@dataclass(frozen=True)
class ScannedPhoto:
    """An image file and the metadata read from it"""
    file_path: str
    filename: str
    capture_time: Optional[str] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    lens_info: Optional[str] = None
    focal_length_mm: Optional[float] = None
    aperture: Optional[float] = None
    shutter_speed: Optional[str] = None
    iso: Optional[int] = None
    exposure_compensation: Optional[float] = None
    white_balance: Optional[str] = None
    flash_fired: Optional[bool] = None
    metering_mode: Optional[str] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    file_size_bytes: int = 0
    is_processed: bool = False


def _extension(path: str) -> str:
    return os.path.splitext(path)[1].lower()


def is_image_file(path: str) -> bool:
    return _extension(path) in IMAGE_EXTENSIONS


def is_processed_file(path: str) -> bool:
    """TIFF and PNG files are treated as exports of a RAW original"""
    return _extension(path) in PROCESSED_EXTENSIONS


def is_raw_file(path: str) -> bool:
    return _extension(path) in RAW_EXTENSIONS


def find_embedded_jpeg(data: bytes, scan_limit: int = 60_000_000,
                       min_size: int = 10_000) -> Optional[bytes]:
    """Return the largest embedded JPEG in `data`, ignoring small thumbnails

    A JPEG is the span from an SOI marker to the first EOI after it. Only
    SOI markers within the first `scan_limit` bytes are considered.
    """
    if len(data) < 1000:
        return None

    best_start = best_end = 0
    position = 0
    while True:
        start = data.find(JPEG_SOI, position)
        if start == -1 or start > scan_limit:
            break
        end = data.find(JPEG_EOI, start + 2)
        if end == -1:
            break
        end += len(JPEG_EOI)

        size = end - start
        if size > min_size and size > best_end - best_start:
            best_start, best_end = start, end
        position = end - 1

    if best_end == 0:
        return None
    return data[best_start:best_end]


def extract_raw_preview(path: str, settings: Optional[ScanSettings] = None) -> Optional[bytes]:
    """Read the embedded JPEG preview of a RAW file

    Non-RAW files and files larger than the configured limit are refused.
    """
    if not is_raw_file(path):
        return None

    settings = settings or ScanSettings()
    try:
        if os.path.getsize(path) > settings.raw_preview_max_file_size:
            logger.debug(f"Skipping preview for oversized file {path}")
            return None
        with open(path, 'rb') as f:
            data = f.read()
    except OSError as e:
        logger.debug(f"Cannot read {path}: {e}")
        return None

    return find_embedded_jpeg(
        data,
        scan_limit=settings.raw_preview_scan_limit,
        min_size=settings.raw_preview_min_jpeg_size
    )


def _sort_key(photo: ScannedPhoto):
    # Timed photos first in time order, then untimed ones by name
    if photo.capture_time is not None:
        return (0, photo.capture_time, '')
    return (1, '', photo.filename)


class PhotoScanner:
    """Scans files and folders for photos"""

    def __init__(self, settings: Optional[ScanSettings] = None,
                 resolver: Optional[ExifFusionResolver] = None):
        self.settings = settings or ScanSettings()
        self.resolver = resolver or ExifFusionResolver()

    def find_images(self, directory: str) -> List[str]:
        """Find all supported image files in a directory

        Args:
            directory: Directory to search in

        Subdirectories are searched when the settings ask for recursion,
        skipping any folder named in `excluded_folders`.
        """
        if not os.path.isdir(directory):
            raise FileNotFoundError(f"Directory not found: {directory}")

        images = []
        if self.settings.recursive:
            for root, dirs, files in os.walk(directory):
                dirs[:] = [d for d in dirs if d not in self.settings.excluded_folders]
                for file in files:
                    if is_image_file(file):
                        images.append(os.path.join(root, file))
        else:
            for file in os.listdir(directory):
                file_path = os.path.join(directory, file)
                if os.path.isfile(file_path) and is_image_file(file):
                    images.append(file_path)

        return sorted(images)

    def scan_single_file(self, path: str) -> Optional[ScannedPhoto]:
        """Read one file's metadata, or None when the file cannot be read"""
        path = os.fspath(path)
        try:
            file_size = os.path.getsize(path)
        except OSError as e:
            logger.debug(f"Cannot stat {path}: {e}")
            return None

        fields = self.resolver.resolve(path)
        return ScannedPhoto(
            file_path=path,
            filename=os.path.basename(path),
            capture_time=fields.capture_time,
            camera_make=fields.camera_make,
            camera_model=fields.camera_model,
            lens_info=fields.lens_info,
            focal_length_mm=fields.focal_length_mm,
            aperture=fields.aperture,
            shutter_speed=fields.shutter_speed,
            iso=fields.iso,
            exposure_compensation=fields.exposure_compensation,
            white_balance=fields.white_balance,
            flash_fired=fields.flash_fired,
            metering_mode=fields.metering_mode,
            gps_latitude=fields.gps_latitude,
            gps_longitude=fields.gps_longitude,
            file_size_bytes=file_size,
            is_processed=is_processed_file(path)
        )

    def scan_photos(self, paths: Iterable[str]) -> List[ScannedPhoto]:
        """Scan folders and individual files, returning photos in capture order"""
        photos = []
        for path in paths:
            path = os.fspath(path)
            if os.path.isdir(path):
                candidates = self.find_images(path)
            elif os.path.isfile(path):
                candidates = [path]
            else:
                logger.warning(f"Path not found: {path}")
                continue

            for candidate in candidates:
                photo = self.scan_single_file(candidate)
                if photo is not None:
                    photos.append(photo)

        photos.sort(key=_sort_key)
        logger.info(f"Scanned {len(photos)} photos")
        return photos
