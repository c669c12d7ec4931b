"""Exceptions raised while importing dive logs"""


class DiveLogError(ValueError):
    """Base class for dive log import failures

    The string form is the message shown to the user.
    """


class DiveLogParseError(DiveLogError):
    """The file content is not valid for its format"""


class DiveLogReadError(DiveLogError):
    """The file could not be read"""


class UnsupportedFormatError(DiveLogError):
    """No parser is registered for the file extension"""
