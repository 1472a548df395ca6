from __future__ import annotations

import io
import os
from typing import List, Optional, Sequence, Tuple

from PIL import Image
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from .base import AcquiredImage, Work
from .config import Config
from .errors import AssemblyFailure
from .utils import log_debug, log_verbose

# A4 at 150 DPI
MAX_PAGE_WIDTH = 1240.0
MAX_PAGE_HEIGHT = 1754.0
MIN_PAGE_SIZE = 100.0

# Smaller files are treated as broken leftovers and rebuilt.
MIN_EXISTING_PDF_SIZE = 1024


def page_size(width: float, height: float) -> Tuple[float, float]:
    """Fits an image into the A4@150dpi box without upscaling, min 100 units per side."""
    scale = 1.0
    if width > MAX_PAGE_WIDTH:
        scale = MAX_PAGE_WIDTH / width
    if height * scale > MAX_PAGE_HEIGHT:
        scale = MAX_PAGE_HEIGHT / height
    return max(width * scale, MIN_PAGE_SIZE), max(height * scale, MIN_PAGE_SIZE)


def chunk_images(
    images: Sequence[AcquiredImage], max_pages: int
) -> List[Sequence[AcquiredImage]]:
    if max_pages <= 0:
        max_pages = len(images)
    return [images[i : i + max_pages] for i in range(0, len(images), max_pages)]


def pdf_name(work_id: str, part: int, total: int) -> str:
    if total == 1:
        return f"{work_id}.pdf"
    return f"{work_id}-part{part}.pdf"


def compress_image(data: bytes, quality: int) -> bytes:
    """Re-encodes to RGB JPEG, which also normalizes odd color spaces."""
    with Image.open(io.BytesIO(data)) as img:
        rgb = img.convert("RGB")
    output = io.BytesIO()
    rgb.save(output, format="JPEG", quality=quality)
    return output.getvalue()


def normalize_image(data: bytes) -> bytes:
    return compress_image(data, 100)


def encrypt_pdf(path: str, password: str) -> None:
    """Encrypts ``path`` in place with AES-256 (same user and owner password)."""
    encrypted_path = path + ".encrypted"
    try:
        # strict=False tolerates non-canonical color space entries
        reader = PdfReader(path, strict=False)
        writer = PdfWriter(clone_from=reader)
        writer.encrypt(
            user_password=password, owner_password=password, algorithm="AES-256"
        )
        with open(encrypted_path, "wb") as fh:
            writer.write(fh)
    except (OSError, PyPdfError) as e:
        if os.path.exists(encrypted_path):
            os.remove(encrypted_path)
        raise AssemblyFailure(f"encryption failed: {e}", path) from e

    try:
        os.remove(path)
    except OSError as e:
        os.remove(encrypted_path)
        raise AssemblyFailure(f"failed to remove original file: {e}", path) from e
    try:
        os.rename(encrypted_path, path)
    except OSError as e:
        raise AssemblyFailure(f"failed to rename encrypted file: {e}", path) from e


class PDFBuilder:
    """Packs acquired pages into one or more (optionally encrypted) PDFs."""

    def __init__(self, config: Config):
        self.config = config

    def output_dir(self, work: Work) -> str:
        return os.path.join(self.config.base_dir, work.id)

    def create_pdfs(self, work: Work, images: Sequence[AcquiredImage]) -> List[str]:
        if not images:
            raise AssemblyFailure("no images to convert")

        pdf_dir = self.output_dir(work)
        try:
            os.makedirs(pdf_dir, exist_ok=True)
        except OSError as e:
            raise AssemblyFailure(f"failed to create PDF directory: {e}", pdf_dir) from e

        chunks = chunk_images(images, self.config.pdf_max_pages)
        pdf_files: List[str] = []
        for part, chunk in enumerate(chunks, start=1):
            pdf_path = os.path.join(pdf_dir, pdf_name(work.id, part, len(chunks)))

            if (
                os.path.isfile(pdf_path)
                and os.path.getsize(pdf_path) > MIN_EXISTING_PDF_SIZE
            ):
                log_verbose(f"  {os.path.basename(pdf_path)} already built, skipping.")
                pdf_files.append(pdf_path)
                continue

            pages = self.create_single_pdf(pdf_path, chunk)
            if self.config.pdf_password:
                encrypt_pdf(pdf_path, self.config.pdf_password)
            print(f"PDF saved → {os.path.basename(pdf_path)} ({pages} pages)")
            pdf_files.append(pdf_path)

        return pdf_files

    def create_single_pdf(self, pdf_path: str, images: Sequence[AcquiredImage]) -> int:
        """Writes one page per decodable image; undecodable images are skipped."""
        writer = PdfWriter()
        for img in images:
            data = self._prepared_bytes(img)
            if data is None:
                continue
            try:
                self._add_image_page(writer, data)
            except (OSError, ValueError, PyPdfError) as e:
                log_verbose(f"  Warning: Skipping image {img.path}: {e}")
                continue

        try:
            with open(pdf_path, "wb") as fh:
                writer.write(fh)
        except OSError as e:
            raise AssemblyFailure(f"failed to write PDF: {e}", pdf_path) from e
        return len(writer.pages)

    def _prepared_bytes(self, img: AcquiredImage) -> Optional[bytes]:
        data = img.data
        if not data:
            try:
                with open(img.path, "rb") as fh:
                    data = fh.read()
            except OSError as e:
                log_verbose(f"  Warning: Could not read {img.path}: {e}")
                return None

        if self.config.compression_enabled:
            try:
                return compress_image(data, self.config.image_quality)
            except (OSError, ValueError) as e:
                log_debug(f"    Compression failed for {img.path}: {e}")
        try:
            return normalize_image(data)
        except (OSError, ValueError) as e:
            log_debug(f"    Normalization failed for {img.path}: {e}")
            return data

    def _add_image_page(self, writer: PdfWriter, data: bytes) -> None:
        single = io.BytesIO()
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            width, height = source.size
            # 72 dpi keeps one pixel per PDF unit before scaling
            if source.format == "JPEG" and source.mode in ("RGB", "L"):
                # keep the prepared quantization tables
                source.save(single, format="PDF", resolution=72.0, quality="keep")
            else:
                rgb = source.convert("RGB")
                rgb.save(single, format="PDF", resolution=72.0, quality=95)

        page_w, page_h = page_size(width, height)
        page = writer.add_page(PdfReader(io.BytesIO(single.getvalue())).pages[0])
        page.scale_to(page_w, page_h)

    def cleanup(self, work: Work) -> None:
        pdf_dir = self.output_dir(work)
        if not os.path.isdir(pdf_dir):
            return
        for name in os.listdir(pdf_dir):
            if name.endswith(".pdf"):
                os.remove(os.path.join(pdf_dir, name))


__all__ = [
    "PDFBuilder",
    "chunk_images",
    "compress_image",
    "encrypt_pdf",
    "page_size",
    "pdf_name",
]
