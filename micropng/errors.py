"""Error codes and exceptions raised while reading PNG data."""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    """Numeric error codes used by the decoder."""

    OK = 0
    NO_MEMORY = 1
    NOT_FOUND = 2
    NOT_PNG = 3
    MALFORMED = 4
    UNSUPPORTED = 5
    INTERLACED = 6
    UNSUPPORTED_FORMAT = 7
    PARAM = 8


class PngError(Exception):
    """Base class for every error raised while reading a PNG image."""

    code: ErrorCode = ErrorCode.PARAM
    default_message = "invalid PNG operation"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NotPngError(PngError):
    """The data does not start with a PNG signature."""

    code = ErrorCode.NOT_PNG
    default_message = "image data does not have a PNG header"


class MalformedError(PngError):
    """The data is not a valid PNG image."""

    code = ErrorCode.MALFORMED
    default_message = "image data is not a valid PNG image"


class UnsupportedChunkError(PngError):
    """A critical chunk of an unsupported type was found."""

    code = ErrorCode.UNSUPPORTED
    default_message = "critical PNG chunk type is not supported"


class InterlacedError(PngError):
    """The image is interlaced, which is not supported."""

    code = ErrorCode.INTERLACED
    default_message = "image interlacing is not supported"


class UnsupportedFormatError(PngError):
    """The colour type and bit depth combination is not supported."""

    code = ErrorCode.UNSUPPORTED_FORMAT
    default_message = "image color format is not supported"


_ERRORS: dict[ErrorCode, type[PngError]] = {
    ErrorCode.NO_MEMORY: PngError,
    ErrorCode.NOT_FOUND: PngError,
    ErrorCode.NOT_PNG: NotPngError,
    ErrorCode.MALFORMED: MalformedError,
    ErrorCode.UNSUPPORTED: UnsupportedChunkError,
    ErrorCode.INTERLACED: InterlacedError,
    ErrorCode.UNSUPPORTED_FORMAT: UnsupportedFormatError,
    ErrorCode.PARAM: PngError,
}


def error_for_code(code: int) -> type[PngError]:
    """Return the exception class that reports the given error code.

    Raises ValueError for OK and for numbers that are not error codes.
    """
    error_code = ErrorCode(code)
    if error_code is ErrorCode.OK:
        raise ValueError("OK is not an error")
    return _ERRORS[error_code]