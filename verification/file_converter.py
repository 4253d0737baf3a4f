import os
import uuid
from typing import List

from PIL import Image
import pillow_heif
from pdf2image import convert_from_path

from .utils import get_file_extension

pillow_heif.register_heif_opener()

SUPPORTED_IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".heic", ".webp"}
PDF_EXT = ".pdf"


def convert_to_images(input_path: str, output_dir: str) -> List[str]:
    """
    Converts an uploaded license photo (image / HEIC / PDF) into JPEG files.
    A PDF yields one image per page; phone scans of a card are usually
    front on page 1 and back on page 2.
    """
    ext = get_file_extension(input_path)
    os.makedirs(output_dir, exist_ok=True)

    if ext in SUPPORTED_IMAGE_EXTS:
        with Image.open(input_path) as img:
            out_path = os.path.join(output_dir, f"{uuid.uuid4().hex}.jpg")
            img.convert("RGB").save(out_path, "JPEG", quality=95)
        return [out_path]

    if ext == PDF_EXT:
        output_paths = []
        # Front and back are all we ever use
        pages = convert_from_path(input_path, dpi=300, first_page=1, last_page=2)
        for i, page in enumerate(pages):
            out_path = os.path.join(output_dir, f"{uuid.uuid4().hex}_page{i+1}.jpg")
            page.convert("RGB").save(out_path, "JPEG", quality=95)
            output_paths.append(out_path)
        return output_paths

    raise ValueError(f"Unsupported file type: {ext}")
