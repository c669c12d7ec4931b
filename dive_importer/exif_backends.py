"""EXIF tag readers with a common interface

Each backend returns a flat mapping of tag name (e.g. "FNumber") to a
`TagValue`. When a tag appears in several IFDs the primary image IFD
wins over the thumbnail IFD, which wins over anything else.
"""

import logging
from abc import ABC, abstractmethod
from collections import namedtuple
from typing import Dict, Iterable, Tuple

import exifread
import exiv2

logger = logging.getLogger(__name__)

# raw: machine value as text ("28/10", "21/1 40/1 37/1", "2024:01:15 10:30:00")
# printable: human readable rendering from the library ("F2.8", "1/60 s")
TagValue = namedtuple('TagValue', ['raw', 'printable'])

PRIMARY = 0
THUMBNAIL = 1
OTHER = 2


class ExifBackend(ABC):
    """Reads EXIF tags from an image file"""

    name = 'backend'

    @abstractmethod
    def _read_entries(self, path: str) -> Iterable[Tuple[int, str, TagValue]]:
        """Yield (precedence, tag name, value) for every tag in the file"""

    def read_tags(self, path: str) -> Dict[str, TagValue]:
        """Return the file's tags, or an empty mapping when it cannot be read"""
        try:
            entries = list(self._read_entries(path))
        except Exception as e:
            logger.debug(f"{self.name} could not read {path}: {e}")
            return {}
        return flatten_tags(entries)


def flatten_tags(entries: Iterable[Tuple[int, str, TagValue]]) -> Dict[str, TagValue]:
    """Merge per-IFD tags into one mapping, lower precedence values first wins"""
    tags: Dict[str, TagValue] = {}
    # sorted() is stable, so file order decides ties within a precedence level
    for _, tag, value in sorted(entries, key=lambda entry: entry[0]):
        tags.setdefault(tag, value)
    return tags


class Exiv2Backend(ExifBackend):
    """exiv2 reader, the most forgiving with RAW containers (CR3, NEF, ARW...)"""

    name = 'exiv2'

    GROUP_PRECEDENCE = {
        'Image': PRIMARY,
        'Photo': PRIMARY,
        'GPSInfo': PRIMARY,
        'Iop': PRIMARY,
        'Thumbnail': THUMBNAIL,
    }

    def _read_entries(self, path: str):
        image = exiv2.ImageFactory.open(path)
        image.readMetadata()

        for datum in image.exifData():
            # Keys look like "Exif.Photo.FNumber"
            _, group, tag = datum.key().split('.', 2)
            yield (
                self.GROUP_PRECEDENCE.get(group, OTHER),
                tag,
                TagValue(raw=datum.toString().strip(), printable=datum.print().strip())
            )


class ExifReadBackend(ExifBackend):
    """exifread reader, strict about structure but reliable for JPEG/TIFF"""

    name = 'exifread'

    IFD_PRECEDENCE = {
        'Image': PRIMARY,
        'EXIF': PRIMARY,
        'GPS': PRIMARY,
        'Interoperability': PRIMARY,
        'Thumbnail': THUMBNAIL,
    }

    def _read_entries(self, path: str):
        with open(path, 'rb') as f:
            tags = exifread.process_file(f, details=False)

        for key, tag in tags.items():
            # Keys look like "EXIF FNumber"; embedded thumbnails have no IFD prefix
            if ' ' not in key:
                continue
            ifd, name = key.rsplit(' ', 1)
            yield (
                self.IFD_PRECEDENCE.get(ifd, OTHER),
                name,
                TagValue(raw=self._raw_text(tag.values), printable=str(tag.printable).strip())
            )

    @staticmethod
    def _raw_text(values) -> str:
        if isinstance(values, (list, tuple)):
            return ' '.join(str(value) for value in values).strip()
        return str(values).strip()
