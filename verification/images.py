import base64
import io
import os
from typing import Optional

from PIL import Image

from config import CLOUDINARY_UPLOAD_MARKER, Settings, get_settings
from .utils import is_image_file, is_valid_url


class ImageTransformService:
    """
    Constrains every image reference before it goes into a request.

    Hosted Cloudinary URLs get an inline delivery transformation, local files
    are downscaled and inlined as a data URL, and anything else passes through
    untouched.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.max_dimension = settings.IMAGE_MAX_DIMENSION
        self.quality = settings.IMAGE_QUALITY
        self.output_format = settings.IMAGE_FORMAT

    @property
    def cloudinary_transformation(self) -> str:
        return f"c_limit,w_{self.max_dimension},h_{self.max_dimension},q_{self.quality},f_{self.output_format}"

    def transform(self, reference: str) -> str:
        if reference.startswith("data:"):
            return reference
        if is_valid_url(reference):
            return self._transform_url(reference)
        if os.path.exists(reference) and is_image_file(reference):
            return self.encode_file(reference)
        return reference

    def _transform_url(self, url: str) -> str:
        if CLOUDINARY_UPLOAD_MARKER not in url:
            return url
        head, tail = url.split(CLOUDINARY_UPLOAD_MARKER, 1)
        transformation = self.cloudinary_transformation
        if tail.startswith(transformation + "/"):
            return url
        return f"{head}{CLOUDINARY_UPLOAD_MARKER}{transformation}/{tail}"

    def encode_file(self, image_path: str) -> str:
        """Downscale a local image and encode it as a base64 JPEG data URL"""
        with Image.open(image_path) as img:
            img = img.convert("RGB")
            img.thumbnail((self.max_dimension, self.max_dimension))
            buffer = io.BytesIO()
            img.save(buffer, "JPEG", quality=self.quality)
        b64 = base64.b64encode(buffer.getvalue()).decode("utf-8")
        return f"data:image/jpeg;base64,{b64}"
