"""
Image dimension probing.

Feeds a streamed image body to Pillow's incremental parser and stops as
soon as the header yields a size, so only the first few kilobytes of most
images are downloaded.
"""

from typing import Iterable, Optional, Tuple

from PIL import ImageFile


def probe_dimensions(chunks: Iterable[bytes]) -> Optional[Tuple[int, int]]:
    """Return (width, height) from the leading bytes of an image, or None."""
    parser = ImageFile.Parser()
    for chunk in chunks:
        parser.feed(chunk)
        if parser.image is not None:
            width, height = parser.image.size
            if width > 0 and height > 0:
                return width, height
            return None
    return None
