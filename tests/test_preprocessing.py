import io

import numpy as np
import pytest
from PIL import Image

from sugarcane_scan.errors import InputError
from sugarcane_scan.preprocessing import ImagePreprocessor, sniff_content_type

from conftest import encode_jpeg


@pytest.fixture
def preprocessor():
    return ImagePreprocessor()


def test_unit_float_image_is_rescaled(preprocessor):
    image = np.full((10, 10, 3), 0.5, dtype=np.float32)
    rgb = preprocessor.load_image(image)
    assert rgb.dtype == np.uint8
    assert int(rgb[0, 0, 0]) == 128


def test_float_image_in_byte_range_is_kept(preprocessor):
    image = np.full((10, 10, 3), 200.0)
    assert int(preprocessor.load_image(image)[0, 0, 1]) == 200


def test_out_of_range_values_are_clipped(preprocessor):
    image = np.full((4, 4, 3), 300, dtype=np.int32)
    assert int(preprocessor.load_image(image).max()) == 255


def test_grayscale_and_rgba_become_rgb(preprocessor):
    gray = np.full((8, 8), 90, dtype=np.uint8)
    rgba = np.zeros((8, 8, 4), dtype=np.uint8)
    assert preprocessor.load_image(gray).shape == (8, 8, 3)
    assert preprocessor.load_image(rgba).shape == (8, 8, 3)


def test_pil_and_file_like_inputs(preprocessor, leaf_rgb):
    pil_image = Image.fromarray(leaf_rgb)
    assert preprocessor.load_image(pil_image).shape == leaf_rgb.shape
    assert preprocessor.load_image(io.BytesIO(encode_jpeg(leaf_rgb))).shape == leaf_rgb.shape


def test_unsupported_shape_rejected(preprocessor):
    with pytest.raises(InputError):
        preprocessor.load_image(np.zeros((4, 4, 2), dtype=np.uint8))


def test_tensor_shape_and_release(preprocessor, leaf_rgb):
    with preprocessor.tensor(leaf_rgb) as batch:
        assert batch.shape == (1, 224, 224, 3)
        assert preprocessor.live_tensors == 1
    assert preprocessor.live_tensors == 0

    with pytest.raises(RuntimeError):
        with preprocessor.tensor(leaf_rgb):
            raise RuntimeError("inference failed")
    assert preprocessor.live_tensors == 0


def test_sniff_content_type(leaf_jpeg):
    assert sniff_content_type(leaf_jpeg) == 'image/jpeg'
    assert sniff_content_type(b'plain text') == 'application/octet-stream'
