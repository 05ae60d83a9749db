"""Exception hierarchy for the FOV overlay tool."""


class FovOverlayError(Exception):
    """Base class for all errors raised by the overlay tool."""


class MetadataMissingError(FovOverlayError):
    """The photo lacks a focal length or pixel dimensions; no overlay can be shown."""


class ExternalToolError(FovOverlayError):
    """An external program (exiftool, ImageMagick) is missing or failed."""


class ThumbnailTimeoutError(FovOverlayError):
    """The host did not deliver a requested thumbnail in time."""


class FullFrameUnavailableError(FovOverlayError):
    """No uncropped pixel source could be produced for the full-frame view."""
