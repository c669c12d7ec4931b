"""Pick a dive log parser from the file extension"""

import logging
import os
from pathlib import Path
from typing import Union

from .errors import DiveLogReadError, UnsupportedFormatError
from .fit_parser import FitDiveParser
from .models import ImportResult
from .ssrf_parser import SsrfParser
from .suunto_parser import SuuntoJsonParser

logger = logging.getLogger(__name__)

PARSERS = {
    'ssrf': SsrfParser,
    'xml': SsrfParser,
    'json': SuuntoJsonParser,
    'fit': FitDiveParser,
}


def _parser_for(extension: str):
    ext = extension.lower().lstrip('.')
    parser_class = PARSERS.get(ext)
    if parser_class is None:
        raise UnsupportedFormatError(f"Unsupported file format: .{ext}")
    return parser_class


def parse_dive_file(path: Union[str, os.PathLike]) -> ImportResult:
    """Parse a dive log file, choosing the format by extension only"""
    path = Path(path)
    parser_class = _parser_for(path.suffix)

    try:
        data = path.read_bytes()
    except OSError as e:
        raise DiveLogReadError(f"Failed to read file: {e}")

    logger.debug(f"Parsing {path} with {parser_class.__name__}")
    return parser_class(data).parse()


def parse_dive_content(data: bytes, extension: str) -> ImportResult:
    """Parse dive log content already held in memory"""
    return _parser_for(extension)(data).parse()
