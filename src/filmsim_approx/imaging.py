from __future__ import annotations

import io
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image, UnidentifiedImageError


class ImageDecodeError(RuntimeError):
    pass


def as_rgb8(image: Any) -> np.ndarray:
    """Coerce a PIL image or an H x W x {3,4} array into a contiguous uint8 RGB array."""

    if isinstance(image, Image.Image):
        return np.asarray(image.convert("RGB"), dtype=np.uint8).copy()

    arr = np.asarray(image)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"expected H x W x 3 (or 4) image, got shape {arr.shape}")
    if arr.shape[0] < 1 or arr.shape[1] < 1:
        raise ValueError(f"image must be at least 1x1, got {arr.shape[1]}x{arr.shape[0]}")
    if arr.dtype != np.uint8:
        if np.issubdtype(arr.dtype, np.floating):
            arr = np.rint(np.clip(arr, 0.0, 1.0) * 255.0)
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    return np.ascontiguousarray(arr[..., :3])


def decode_image_bytes(data: bytes, label: str = "<bytes>") -> np.ndarray:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return as_rgb8(img)
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageDecodeError(f"image decode failed for {label}: {exc}") from exc


def read_image(path: Path) -> np.ndarray:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ImageDecodeError(f"cannot read image {path}: {exc}") from exc
    return decode_image_bytes(data, label=str(path))


def encode_jpeg(frame: np.ndarray, quality: int) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(as_rgb8(frame)).save(buf, format="JPEG", quality=int(quality))
    return buf.getvalue()


def jpeg_round_trip(frame: np.ndarray, quality: int) -> tuple[bytes, np.ndarray]:
    """Apply the same lossy step oracle frames go through."""

    encoded = encode_jpeg(frame, quality)
    return encoded, decode_image_bytes(encoded, label="<jpeg round trip>")


def write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def resize_nearest(frame: np.ndarray, max_dimension: int) -> np.ndarray:
    """Downscale so the longest side is at most max_dimension; never upscales."""

    arr = as_rgb8(frame)
    height, width = arr.shape[:2]
    source_max = max(width, height)
    if source_max <= max_dimension:
        return arr.copy()

    scale = max_dimension / source_max
    target_w = max(1, int(np.floor(width * scale + 0.5)))
    target_h = max(1, int(np.floor(height * scale + 0.5)))
    ys = np.minimum(height - 1, np.floor(np.arange(target_h) / target_h * height).astype(np.int64))
    xs = np.minimum(width - 1, np.floor(np.arange(target_w) / target_w * width).astype(np.int64))
    return np.ascontiguousarray(arr[ys][:, xs])


def resize_bilinear(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    arr = as_rgb8(frame)
    if arr.shape[1] == width and arr.shape[0] == height:
        return arr.copy()
    img = Image.fromarray(arr).resize((int(width), int(height)), Image.Resampling.BILINEAR)
    return np.asarray(img, dtype=np.uint8).copy()
