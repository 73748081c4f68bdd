"""
Content-Type detection utilities.
Resolve the MIME type stored on relayed objects from the target name.
"""

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Video containers the control panel is meant for; everything else is opaque
VIDEO_MIME_TYPES = {
    "mp4": "video/mp4",
    "mkv": "video/x-matroska",
    "webm": "video/webm",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
}


def resolve_content_type(filename: str) -> str:
    """
    Resolve Content-Type from the trailing extension of a filename.

    Lookup is case-insensitive against VIDEO_MIME_TYPES. Names without a
    known extension get 'application/octet-stream'.

    Args:
        filename: Object name (e.g., "clip.MKV", "path/to/movie.mp4")

    Returns:
        MIME type string

    Examples:
        >>> resolve_content_type("clip.mkv")
        'video/x-matroska'

        >>> resolve_content_type("clip.xyz")
        'application/octet-stream'

        >>> resolve_content_type("README")
        'application/octet-stream'
    """
    if "." not in filename:
        return DEFAULT_CONTENT_TYPE

    extension = filename.rsplit(".", 1)[-1].lower()
    return VIDEO_MIME_TYPES.get(extension, DEFAULT_CONTENT_TYPE)
