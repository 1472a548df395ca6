import io
import os
import random

import pytest
from PIL import Image
from pypdf import PdfReader

from jmcomic.base import AcquiredImage, Work
from jmcomic.errors import AssemblyFailure
from jmcomic.pdf import (
    MIN_EXISTING_PDF_SIZE,
    PDFBuilder,
    chunk_images,
    compress_image,
    normalize_image,
    page_size,
    pdf_name,
)
from tests.conftest import image_bytes


def solid_jpeg(width, height, color=(200, 30, 30)):
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG")
    return buf.getvalue()


def acquired(count, data=None):
    return [
        AcquiredImage(
            chapter_index=i,
            index=i,
            path=f"{i:04d}.jpg",
            data=data if data is not None else image_bytes(40, 60),
        )
        for i in range(count)
    ]


@pytest.fixture
def work():
    return Work(id="4242", title="Booklet")


@pytest.mark.parametrize(
    "size, expected",
    [
        ((600, 800), (600, 800)),
        ((2480, 1754), (1240, 877)),
        ((1000, 3508), (500, 1754)),
        ((4960, 3508), (1240, 877)),
        ((10, 10), (100, 100)),
        ((50, 400), (100, 400)),
    ],
)
def test_page_size(size, expected):
    assert page_size(*size) == pytest.approx(expected)


def test_page_size_never_exceeds_box():
    for w, h in [(2000, 900), (900, 4000), (3000, 3000), (1241, 1755)]:
        pw, ph = page_size(w, h)
        assert pw <= 1240.0 + 1e-9 and ph <= 1754.0 + 1e-9
        assert pw / ph == pytest.approx(w / h)


def test_chunking_and_names():
    chunks = chunk_images(acquired(5, b"x"), 3)
    assert [len(c) for c in chunks] == [3, 2]
    assert len(chunk_images(acquired(5, b"x"), 0)) == 1
    assert pdf_name("4242", 1, 1) == "4242.pdf"
    assert pdf_name("4242", 2, 3) == "4242-part2.pdf"


def test_single_pdf(config, work):
    paths = PDFBuilder(config).create_pdfs(work, acquired(3))

    assert paths == [os.path.join(config.base_dir, "4242", "4242.pdf")]
    assert len(PdfReader(paths[0]).pages) == 3


def test_split_into_parts(config, work):
    config.pdf_max_pages = 3

    paths = PDFBuilder(config).create_pdfs(work, acquired(5))

    assert [os.path.basename(p) for p in paths] == ["4242-part1.pdf", "4242-part2.pdf"]
    assert [len(PdfReader(p).pages) for p in paths] == [3, 2]


def test_page_boxes_follow_image_size(config, work):
    images = [
        AcquiredImage(0, 0, "0000.jpg", data=solid_jpeg(2480, 1000)),
        AcquiredImage(1, 1, "0001.jpg", data=solid_jpeg(300, 500)),
    ]

    (path,) = PDFBuilder(config).create_pdfs(work, images)

    boxes = [
        (float(p.mediabox.width), float(p.mediabox.height))
        for p in PdfReader(path).pages
    ]
    assert boxes[0] == pytest.approx((1240, 500), abs=0.5)
    assert boxes[1] == pytest.approx((300, 500), abs=0.5)


def test_pages_are_scaled_after_attaching(config, work, recwarn):
    (path,) = PDFBuilder(config).create_pdfs(work, acquired(2))

    assert len(PdfReader(path).pages) == 2
    assert not [w for w in recwarn if "not attached to a writer" in str(w.message)]


def test_undecodable_image_is_skipped(config, work):
    images = acquired(2)
    images.insert(1, AcquiredImage(5, 5, "0005.jpg", data=b"definitely not an image"))

    (path,) = PDFBuilder(config).create_pdfs(work, images)

    assert len(PdfReader(path).pages) == 2


def test_images_are_read_from_disk(config, work, tmp_path):
    stored = tmp_path / "0000.png"
    stored.write_bytes(image_bytes(30, 30, fmt="PNG"))

    (path,) = PDFBuilder(config).create_pdfs(
        work, [AcquiredImage(0, 0, str(stored))]
    )

    assert len(PdfReader(path).pages) == 1


def noise_jpeg(width=400, height=600):
    rng = random.Random(0)
    img = Image.frombytes("RGB", (width, height), rng.randbytes(width * height * 3))
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=95)
    return buf.getvalue()


def embedded_jpeg(path):
    page = PdfReader(path).pages[0]
    xobjects = page["/Resources"]["/XObject"]
    (image,) = [xobjects[name].get_object() for name in xobjects]
    assert image["/Filter"] == "/DCTDecode"
    return image.get_data()


@pytest.mark.parametrize("quality", [0, 20, 60])
def test_embedded_image_keeps_prepared_encoding(config, work, quality):
    source = noise_jpeg()
    config.image_quality = quality
    prepared = compress_image(source, quality) if quality else normalize_image(source)

    (path,) = PDFBuilder(config).create_pdfs(
        work, [AcquiredImage(0, 0, "0000.jpg", data=source)]
    )

    embedded = embedded_jpeg(path)
    assert len(prepared) * 0.9 <= len(embedded) <= len(prepared) * 1.1
    with Image.open(io.BytesIO(embedded)) as img:
        assert img.size == (400, 600)


def test_lower_quality_gives_smaller_document(config, work, tmp_path):
    source = [AcquiredImage(0, 0, "0000.jpg", data=noise_jpeg())]
    sizes = []
    for quality in (20, 90):
        config.base_dir = str(tmp_path / f"q{quality}")
        config.image_quality = quality
        (path,) = PDFBuilder(config).create_pdfs(work, source)
        sizes.append(os.path.getsize(path))

    assert sizes[0] < sizes[1] / 2


def test_no_images(config, work):
    with pytest.raises(AssemblyFailure):
        PDFBuilder(config).create_pdfs(work, [])


def test_existing_pdf_is_kept(config, work):
    builder = PDFBuilder(config)
    target = os.path.join(builder.output_dir(work), "4242.pdf")
    os.makedirs(os.path.dirname(target))
    payload = b"%PDF-1.4\n" + b"0" * MIN_EXISTING_PDF_SIZE
    with open(target, "wb") as fh:
        fh.write(payload)

    assert builder.create_pdfs(work, acquired(2)) == [target]
    with open(target, "rb") as fh:
        assert fh.read() == payload


def test_tiny_existing_pdf_is_rebuilt(config, work):
    builder = PDFBuilder(config)
    target = os.path.join(builder.output_dir(work), "4242.pdf")
    os.makedirs(os.path.dirname(target))
    with open(target, "wb") as fh:
        fh.write(b"%PDF-broken")

    builder.create_pdfs(work, acquired(2))

    assert len(PdfReader(target).pages) == 2


def test_encrypted_output(config, work):
    config.pdf_password = "secret"

    (path,) = PDFBuilder(config).create_pdfs(work, acquired(2))

    assert not os.path.exists(path + ".encrypted")
    reader = PdfReader(path)
    assert reader.is_encrypted
    encryption = reader.trailer["/Encrypt"].get_object()
    assert encryption["/V"] == 5
    assert encryption["/R"] == 6
    assert reader.decrypt("secret")
    assert len(reader.pages) == 2


def test_cleanup_removes_pdfs(config, work):
    builder = PDFBuilder(config)
    builder.create_pdfs(work, acquired(1))
    extra = os.path.join(builder.output_dir(work), "0000.jpg")
    with open(extra, "wb") as fh:
        fh.write(b"keep")

    builder.cleanup(work)

    assert os.listdir(builder.output_dir(work)) == ["0000.jpg"]
