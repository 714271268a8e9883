"""
Image Preprocessing Module for Sugarcane Leaf Validation
Decodes user supplied images and builds the fixed-size model input tensor
"""

import io
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Tuple, Iterator

import cv2
import numpy as np
from PIL import Image

from .errors import InputError

MODEL_INPUT_SIZE = (224, 224)
MODEL_INPUT_CHANNELS = 3


class ImagePreprocessor:
    """Handles image decoding and tensor preparation"""

    def __init__(self, target_size: Tuple[int, int] = MODEL_INPUT_SIZE):
        """
        Initialize preprocessor

        Args:
            target_size: Target tensor size (width, height)
        """
        self.target_size = target_size
        self._live_tensors = 0
        self._lock = threading.Lock()

    @property
    def input_shape(self) -> Tuple[int, int, int, int]:
        width, height = self.target_size
        return (1, height, width, MODEL_INPUT_CHANNELS)

    @property
    def live_tensors(self) -> int:
        """Number of tensors currently checked out through tensor()"""
        with self._lock:
            return self._live_tensors

    def load_image(self, image) -> np.ndarray:
        """
        Decode an image into an RGB uint8 array

        Args:
            image: Encoded bytes, file path, file-like object, PIL image or numpy array

        Returns:
            RGB image as numpy array of shape (height, width, 3)

        Raises:
            InputError: if the image cannot be decoded
        """
        if isinstance(image, np.ndarray):
            return self._normalize_array(image)

        if isinstance(image, Image.Image):
            return np.asarray(image.convert('RGB')).copy()

        if isinstance(image, (str, Path)):
            decoded = cv2.imread(str(image), cv2.IMREAD_COLOR)
            if decoded is None:
                raise InputError(f"Could not load image from {image}")
            return cv2.cvtColor(decoded, cv2.COLOR_BGR2RGB)

        if hasattr(image, 'read'):
            image = image.read()

        if isinstance(image, (bytes, bytearray, memoryview)):
            return self.decode_bytes(bytes(image))

        raise InputError(f"Unsupported image input: {type(image).__name__}")

    def decode_bytes(self, data: bytes) -> np.ndarray:
        if not data:
            raise InputError("Image data is empty")

        buffer = np.frombuffer(data, dtype=np.uint8)
        decoded = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
        if decoded is None:
            # OpenCV lacks some codecs Pillow can read (e.g. some GIF/WebP builds)
            try:
                with Image.open(io.BytesIO(data)) as pil_image:
                    return np.asarray(pil_image.convert('RGB')).copy()
            except (OSError, ValueError) as e:
                raise InputError(f"Could not decode image data: {e}") from e
        return cv2.cvtColor(decoded, cv2.COLOR_BGR2RGB)

    def _normalize_array(self, image: np.ndarray) -> np.ndarray:
        if image.size == 0:
            raise InputError("Image array is empty")

        if image.dtype != np.uint8:
            # float images in [0, 1] are rescaled; anything else is taken as 0..255
            if np.issubdtype(image.dtype, np.floating) and image.max() <= 1.0:
                image = image * 255.0
            image = np.clip(np.rint(image), 0, 255).astype(np.uint8)

        if image.ndim == 2:
            return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
        if image.ndim == 3 and image.shape[2] == 3:
            return image
        if image.ndim == 3 and image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_RGBA2RGB)
        if image.ndim == 3 and image.shape[2] == 1:
            return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2RGB)

        raise InputError(f"Unsupported image array shape: {image.shape}")

    def to_tensor(self, image: np.ndarray) -> np.ndarray:
        """
        Build the model input tensor

        Args:
            image: RGB uint8 image

        Returns:
            float32 array of shape (1, height, width, 3) scaled to [0, 1]
        """
        resized = cv2.resize(image, self.target_size, interpolation=cv2.INTER_LINEAR)
        batch = resized.astype(np.float32)[np.newaxis, ...]
        batch /= 255.0
        return batch

    def zeros_tensor(self) -> np.ndarray:
        return np.zeros(self.input_shape, dtype=np.float32)

    @contextmanager
    def tensor(self, image: np.ndarray) -> Iterator[np.ndarray]:
        """Scoped tensor: the buffer is released when the block exits, on error too"""
        batch = self.to_tensor(image)
        with self._lock:
            self._live_tensors += 1
        try:
            yield batch
        finally:
            with self._lock:
                self._live_tensors -= 1
            del batch


def sniff_content_type(data: bytes, default: str = 'application/octet-stream') -> str:
    """Guess an image MIME type from its bytes"""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return Image.MIME.get(image.format, default)
    except (OSError, ValueError):
        return default
