import pytest
from PIL import Image
from gallery_ingest.derivatives.images import (
    DerivativeGenerator,
    approximate_aspect_ratio,
    create_thumbnail,
    generate_placeholder,
    probe_image,
)
from gallery_ingest.exceptions import DerivativeError


@pytest.mark.parametrize("width,height,expected", [
    (6000, 4000, 1.5),
    (1000, 1000, 1.0),
    (4000, 3000, 1.33),
    (1920, 1080, 1.78),
    (1080, 1920, 0.56),
    (4000, 5000, 0.8),
    (1000, 333, 3.0),
    (0, 100, 1.0),
])
def test_approximate_aspect_ratio(width, height, expected):
    assert approximate_aspect_ratio(width, height) == expected


def test_probe_reports_original_dimensions(tmp_path, make_image):
    p = make_image(tmp_path / "a.png", size=(640, 480))
    info = probe_image(p)

    assert (info.width, info.height) == (640, 480)
    assert info.format == "PNG"
    assert info.mime_type == "image/png"
    assert info.file_size == p.stat().st_size


def test_thumbnail_downscales_to_width(tmp_path, make_image):
    src = make_image(tmp_path / "big.jpg", size=(1200, 800))
    out = tmp_path / "thumb.jpg"

    thumb = create_thumbnail(src, out, width=300)

    assert (thumb.width, thumb.height) == (300, 200)
    assert out.read_bytes() == thumb.data
    with Image.open(out) as img:
        assert img.format == "JPEG"
        assert img.size == (300, 200)


def test_thumbnail_never_upscales(tmp_path, make_image):
    src = make_image(tmp_path / "small.jpg", size=(120, 90))
    thumb = create_thumbnail(src, tmp_path / "thumb.jpg", width=300)
    assert (thumb.width, thumb.height) == (120, 90)


@pytest.mark.parametrize("mode,fmt,color", [
    ('RGBA', 'PNG', (10, 200, 30, 128)),
    ('CMYK', 'JPEG', (0, 128, 255, 0)),
    ('L', 'PNG', 90),
    ('P', 'GIF', 3),
])
def test_non_rgb_sources_are_normalized(tmp_path, make_image, mode, fmt, color):
    src = make_image(tmp_path / f"src.{fmt.lower()}", size=(400, 300), mode=mode, color=color, fmt=fmt)

    thumb = create_thumbnail(src, tmp_path / "thumb.jpg", width=200)
    placeholder = generate_placeholder(src)

    assert (thumb.width, thumb.height) == (200, 150)
    assert len(placeholder) == 28


def test_placeholder_is_stable(tmp_path, make_image):
    src = make_image(tmp_path / "a.jpg", size=(800, 600), color=(30, 60, 90))

    first = generate_placeholder(src)
    second = generate_placeholder(src)

    # 4x3 components -> 28 characters
    assert first == second
    assert len(first) == 28


def test_undecodable_file_raises(tmp_path):
    bad = tmp_path / "bad.jpg"
    bad.write_bytes(b"definitely not an image")

    gen = DerivativeGenerator()
    with pytest.raises(DerivativeError):
        gen.probe(bad)
    with pytest.raises(DerivativeError):
        gen.thumbnail(bad, tmp_path / "thumb.jpg")
    with pytest.raises(DerivativeError):
        gen.placeholder(bad)
    assert not (tmp_path / "thumb.jpg").exists()
