"""Dive log import and photo-to-dive matching"""

__version__ = "0.1.0"
