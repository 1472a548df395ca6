"""Segment-permutation scrambling used by the image hosts, and its inverse.

Images served for newer chapters are cut into ``n`` horizontal strips and the
strip order is reversed. The first strip (top of the original) also carries
the ``height % n`` remainder rows.
"""

from __future__ import annotations

import hashlib
import io
from typing import List, Tuple

from PIL import Image

from .utils import log_debug

SCRAMBLE_220980 = 220980
SCRAMBLE_268850 = 268850
SCRAMBLE_421926 = 421926  # 2023-02-08 changed image cutting algorithm

LEGACY_SEGMENTS = 10
OUTPUT_QUALITY = 95

Span = Tuple[int, int]


def _to_int(value) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


def segment_count(scramble_id, chapter_id, filename: str) -> int:
    """Number of strips an image was cut into (0 = not scrambled)."""
    scramble = _to_int(scramble_id)
    aid = _to_int(chapter_id)

    if aid < scramble:
        return 0
    if aid < SCRAMBLE_268850:
        return LEGACY_SEGMENTS

    x = 8 if aid >= SCRAMBLE_421926 else 10
    digest = hashlib.md5(f"{aid}{filename}".encode("utf-8")).hexdigest()
    num = ord(digest[-1]) % x
    return num * 2 + 2


def strip_layout(height: int, segments: int) -> List[Tuple[Span, Span]]:
    """(served span, original span) pairs, strip 0 being the top of the original."""
    base, rem = divmod(height, segments)
    layout = []
    for i in range(segments):
        dst_y = i * base + (rem if i > 0 else 0)
        dst_h = base + rem if i == 0 else base
        src_y = height - (i + 1) * base - rem
        layout.append(((src_y, src_y + dst_h), (dst_y, dst_y + dst_h)))
    return layout


def _move_strips(image: Image.Image, segments: int, forward: bool) -> Image.Image:
    width, height = image.size
    result = Image.new(image.mode, (width, height))
    if image.mode == "P":
        result.putpalette(image.getpalette())
    for served, original in strip_layout(height, segments):
        src, dst = (original, served) if forward else (served, original)
        if src[1] <= src[0]:
            continue
        strip = image.crop((0, src[0], width, src[1]))
        result.paste(strip, (0, dst[0]))
    return result


def unscramble_image(image: Image.Image, segments: int) -> Image.Image:
    """Pixel-exact inverse of :func:`scramble_image`."""
    if segments <= 1:
        return image.copy()
    return _move_strips(image, segments, forward=False)


def scramble_image(image: Image.Image, segments: int) -> Image.Image:
    if segments <= 1:
        return image.copy()
    return _move_strips(image, segments, forward=True)


def reconstruct(data: bytes, segments: int) -> bytes:
    """Reverses the strip permutation and re-encodes as JPEG.

    Never raises: unscrambled or undecodable input comes back unchanged.
    """
    if segments <= 0:
        return data
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            restored = unscramble_image(img, segments)
        if restored.mode not in ("RGB", "L"):
            restored = restored.convert("RGB")
        output = io.BytesIO()
        restored.save(output, format="JPEG", quality=OUTPUT_QUALITY)
        return output.getvalue()
    except (OSError, ValueError) as e:
        log_debug(f"    Could not descramble image, keeping original bytes: {e}")
        return data


__all__ = [
    "SCRAMBLE_220980",
    "SCRAMBLE_268850",
    "SCRAMBLE_421926",
    "reconstruct",
    "scramble_image",
    "segment_count",
    "strip_layout",
    "unscramble_image",
]
