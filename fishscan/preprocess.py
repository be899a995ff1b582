from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import numpy as np

from .errors import DecodeError
from .types import PreprocessedImage

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes, bytearray, memoryview, np.ndarray]


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for preprocessing. Install with `pip install opencv-python`.") from e
    return cv2


def decode_image(source: ImageSource) -> np.ndarray:
    """
    Decode `source` into an (H, W, 3) BGR uint8 array.

    Accepts a file path, encoded image bytes, or an already decoded array.
    Anything unreadable raises DecodeError.
    """

    cv2 = _cv2()

    if isinstance(source, np.ndarray):
        image = source
    else:
        if isinstance(source, (str, Path)):
            try:
                data = Path(source).read_bytes()
            except OSError as exc:
                raise DecodeError(f"Could not read image at path: {source}") from exc
        else:
            data = bytes(source)
        if not data:
            raise DecodeError("Image data is empty")
        image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            raise DecodeError("Unsupported or corrupt image data")

    if image.ndim != 3 or image.shape[2] != 3:
        raise DecodeError(f"Expected image shape (H, W, 3), got {getattr(image, 'shape', None)}")
    h, w = image.shape[:2]
    if h <= 0 or w <= 0:
        raise DecodeError(f"Image has invalid size {w}x{h}")
    return image


def preprocess_image(source: ImageSource, input_size: int = 640) -> PreprocessedImage:
    """
    Turn an image into the detector's batched input.

    Steps: decode -> BGR to RGB -> float32 -> bilinear resize to
    (input_size, input_size) -> divide by 255 -> add batch axis. The result
    is NHWC, shaped (1, S, S, 3). The stretch does not keep aspect ratio; the
    model predicts boxes relative to its square input, which map back onto
    the original image as plain fractions.
    """

    cv2 = _cv2()
    image = decode_image(source)
    orig_h, orig_w = image.shape[:2]
    logger.debug("Original image size: %dx%d", orig_w, orig_h)

    rgb = image[:, :, ::-1].astype(np.float32)
    resized = cv2.resize(rgb, (input_size, input_size), interpolation=cv2.INTER_LINEAR)
    del rgb
    resized /= 255.0
    batched = np.ascontiguousarray(resized[None, ...])
    del resized

    logger.debug("Preprocessed tensor shape: %s", batched.shape)
    return PreprocessedImage(tensor=batched, original_width=int(orig_w), original_height=int(orig_h))
