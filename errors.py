"""Exceptions raised by the converter."""


class ConversionError(Exception):
    """Base class for every error the converter surfaces to callers."""

    def __init__(self, message: str = "Image conversion failed"):
        self.message: str = message
        super().__init__(self.message)


# Pillow (or its core extension) cannot be imported
class ImageEnvironmentError(ConversionError):
    pass


# Requested output format or detected source format is unsupported
class FormatError(ConversionError):
    pass


# Source missing / not an image, or destination directory missing
class FileError(ConversionError):
    pass


class TransformError(ConversionError):
    pass


class EncodeError(ConversionError):
    pass
