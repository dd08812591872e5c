import io
import re
import zipfile

import pytest
from PIL import Image

from utils import watermark as wm


def _png(size=(400, 300), color=(200, 30, 30, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def _jpeg(size=(800, 600), color=(10, 120, 200)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    return buf.getvalue()


def test_normalize_settings_defaults_and_clamps():
    assert wm.normalize_settings(None, None, None) == ("bottom-right", 15.0, 100.0)
    assert wm.normalize_settings("TOP_LEFT", 0, 150) == ("top-left", 1.0, 100.0)
    assert wm.normalize_settings("nowhere", 250, -5) == ("bottom-right", 100.0, 0.0)


@pytest.mark.parametrize(
    "position,expected_xy",
    [
        ("top-left", (115, 115)),
        ("top-right", (3840 - 576 - 115, 115)),
        ("bottom-left", (115, 2160 - 288 - 115)),
        ("bottom-right", (3840 - 576 - 115, 2160 - 288 - 115)),
        ("center", ((3840 - 576) // 2, (2160 - 288) // 2)),
    ],
)
def test_logo_box_positions(position, expected_xy):
    # 2:1 logo at 15% of a 3840 canvas -> 576x288, margin 3% -> 115.2
    x, y, w, h = wm.compute_logo_box(3840, 2160, 200, 100, 15, position)
    assert (w, h) == (576, 288)
    assert abs(x - expected_xy[0]) <= 1
    assert abs(y - expected_xy[1]) <= 1


def test_high_res_render_letterboxes_on_dark_background():
    base = Image.new("RGBA", (1000, 1000), (255, 255, 255, 255))
    canvas = wm.render_to_canvas(base, high_res=True)
    assert canvas.size == (3840, 2160)
    # Square photo scaled to 2160 tall leaves side bars
    assert canvas.getpixel((10, 1080)) == wm.BACKGROUND_COLOR
    assert canvas.getpixel((1920, 1080)) == (255, 255, 255)


def test_preview_keeps_native_size_and_applies_logo():
    base = Image.new("RGBA", (1000, 500), (255, 255, 255, 255))
    logo = Image.new("RGBA", (100, 100), (0, 0, 0, 255))
    canvas = wm.render_to_canvas(base, logo, "top-left", 10, 100, high_res=False)
    assert canvas.size == (1000, 500)
    # Logo is 100px wide at margin 30px
    assert canvas.getpixel((60, 60)) == (0, 0, 0)
    assert canvas.getpixel((500, 250)) == (255, 255, 255)


def test_opacity_blends_logo():
    base = Image.new("RGBA", (1000, 500), (255, 255, 255, 255))
    logo = Image.new("RGBA", (100, 100), (0, 0, 0, 255))
    canvas = wm.render_to_canvas(base, logo, "top-left", 10, 50, high_res=False)
    r, g, b = canvas.getpixel((60, 60))
    assert 120 <= r <= 135


def test_zero_opacity_skips_logo():
    base = Image.new("RGBA", (400, 200), (255, 255, 255, 255))
    logo = Image.new("RGBA", (100, 100), (0, 0, 0, 255))
    canvas = wm.render_to_canvas(base, logo, "center", 50, 0, high_res=False)
    assert canvas.getpixel((200, 100)) == (255, 255, 255)


def test_undecodable_logo_is_skipped():
    assert wm.load_logo(b"not an image") is None
    assert wm.load_logo(None) is None


def test_undecodable_base_raises():
    with pytest.raises(wm.ImageDecodeError):
        wm.export_single(b"garbage", None, "bottom-right", 15, 100)


def test_export_single_is_4k_jpeg():
    out = wm.export_single(_jpeg(), wm.load_logo(_png()), "bottom-right", 15, 100)
    img = Image.open(io.BytesIO(out))
    assert img.format == "JPEG"
    assert img.size == (3840, 2160)


def test_export_zip_entries():
    data = wm.export_zip([_jpeg(), _png()], None, "center", 20, 80)
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.namelist() == ["imagem-1.jpg", "imagem-2.jpg"]
        first = Image.open(io.BytesIO(zf.read("imagem-1.jpg")))
        assert first.size == (3840, 2160)


def test_export_pdf_has_one_page_per_image():
    data = wm.export_pdf([_jpeg(), _jpeg(), _png()], None, "center", 20, 80)
    assert data.startswith(b"%PDF")
    assert data.count(b"/Type /Page") - data.count(b"/Type /Pages") == 3
    assert len(re.findall(rb"/MediaBox\s*\[\s*0\s+0\s+3840\s+2160\s*\]", data)) == 3


def test_export_pdf_requires_images():
    with pytest.raises(wm.ImageDecodeError):
        wm.export_pdf([], None, "center", 20, 80)


def test_export_names_and_batch_id():
    batch = wm.new_batch_id()
    assert 1000000 <= batch <= 9999999
    assert wm.single_export_name(1234567) == "Corretor pro - 1234567.jpg"
    assert wm.batch_jpeg_name(1234567, 2) == "Corretor pro - 1234567-2.jpg"
    assert wm.zip_export_name(1234567) == "Corretor-Pro-Lote-1234567.zip"
    assert wm.pdf_export_name(1234567) == "Corretor-Pro-Lote-1234567.pdf"


def test_jpeg_batch_names_are_one_based():
    out = wm.export_jpeg_batch([_jpeg(), _jpeg()], None, "center", 20, 80, 7654321)
    assert [name for name, _ in out] == ["Corretor pro - 7654321-1.jpg", "Corretor pro - 7654321-2.jpg"]


def test_oversized_image_is_a_decode_error(monkeypatch):
    photo = _jpeg((200, 200))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    with pytest.raises(wm.ImageDecodeError):
        wm.decode_image(photo)
    with pytest.raises(wm.ImageDecodeError):
        wm.export_zip([photo], None, "center", 20, 80)
    assert wm.load_logo(photo) is None
