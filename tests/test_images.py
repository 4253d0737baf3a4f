import base64
import io

import pytest
from PIL import Image

from verification.images import ImageTransformService

CLOUDINARY = "https://res.cloudinary.com/demo/image/upload/v1712/licenses/front.jpg"
TRANSFORMED = "https://res.cloudinary.com/demo/image/upload/c_limit,w_1600,h_1600,q_85,f_jpg/v1712/licenses/front.jpg"


@pytest.fixture
def transformer(settings):
    return ImageTransformService(settings)


def test_cloudinary_url_gets_transformation(transformer):
    assert transformer.transform(CLOUDINARY) == TRANSFORMED


def test_cloudinary_transformation_is_idempotent(transformer):
    assert transformer.transform(transformer.transform(CLOUDINARY)) == TRANSFORMED


@pytest.mark.parametrize("reference", [
    "https://images.example.com/licenses/front.jpg",
    "data:image/jpeg;base64,/9j/4AAQSkZJRg==",
    "/no/such/file.jpg",
    "s3://bucket/front.jpg",
])
def test_other_references_pass_through(transformer, reference):
    assert transformer.transform(reference) == reference


def test_local_file_is_downscaled_and_inlined(transformer, tmp_path):
    path = tmp_path / "front.png"
    Image.new("RGB", (3000, 2000), color=(200, 30, 30)).save(path)

    data_url = transformer.transform(str(path))

    prefix = "data:image/jpeg;base64,"
    assert data_url.startswith(prefix)
    with Image.open(io.BytesIO(base64.b64decode(data_url[len(prefix):]))) as img:
        assert img.format == "JPEG"
        assert img.width == 1600
        assert img.height in (1066, 1067)


def test_small_local_file_keeps_its_size(transformer, tmp_path):
    path = tmp_path / "back.jpg"
    Image.new("RGB", (800, 500)).save(path)
    data_url = transformer.transform(str(path))
    with Image.open(io.BytesIO(base64.b64decode(data_url.split(",", 1)[1]))) as img:
        assert img.size == (800, 500)
