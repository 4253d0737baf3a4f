import os
from urllib.parse import urlparse

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp'}


def is_valid_url(url: str) -> bool:
    """Check if string is an http(s) URL"""
    try:
        result = urlparse(url)
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.netloc)


def get_file_extension(filename: str) -> str:
    """Get file extension from filename"""
    return os.path.splitext(filename)[1].lower()


def is_image_file(filename: str) -> bool:
    """Check if file has image extension"""
    return get_file_extension(filename) in IMAGE_EXTENSIONS

