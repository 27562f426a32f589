import sys
from pathlib import Path

import pytest
from PIL import Image, ImageChops

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import image_renderer as renderer
from watermark_config import ImageRef, ReadError, RenderSettings, TextLabel, WatermarkSpec, WriteError

EXIF_MAKE = 0x010F


def settings_for(tmp_path, **kwargs):
    return RenderSettings(output_dir=tmp_path / "out", **kwargs)


def test_jpeg_keeps_format_size_and_exif(tmp_path):
    src = tmp_path / "a.jpg"
    exif = Image.Exif()
    exif[EXIF_MAKE] = "TestCam"
    Image.new("RGB", (1000, 800), (40, 90, 160)).save(src, exif=exif.tobytes())
    spec = WatermarkSpec(TextLabel("© Test"), position="bottom-right", scale=0.2, margin=20)

    out = renderer.render_image(src, spec, settings_for(tmp_path))

    assert out == tmp_path / "out" / "a_wm.jpg"
    with Image.open(out) as result:
        assert result.format == "JPEG"
        assert result.size == (1000, 800)
        assert result.getexif()[EXIF_MAKE] == "TestCam"


def test_png_logo_centered(tmp_path):
    src = tmp_path / "base.png"
    Image.new("RGB", (500, 500), (255, 255, 255)).save(src)
    logo = tmp_path / "logo.png"
    Image.new("RGBA", (300, 200), (255, 0, 0, 255)).save(logo)
    spec = WatermarkSpec(ImageRef(logo), position="center", scale=0.3, opacity=1.0)

    out = renderer.render_image(src, spec, settings_for(tmp_path))

    # logo resized to 150x100 and centered at (175, 200)
    with Image.open(out) as result:
        assert result.format == "PNG"
        assert result.mode == "RGB"
        assert result.getpixel((250, 250)) == (255, 0, 0)
        assert result.getpixel((180, 205)) == (255, 0, 0)
        assert result.getpixel((170, 250)) == (255, 255, 255)
        assert result.getpixel((250, 305)) == (255, 255, 255)


def test_text_is_drawn_near_bottom_right_only(tmp_path):
    src = tmp_path / "a.png"
    original = Image.new("RGB", (1000, 800), (128, 128, 128))
    original.save(src)
    spec = WatermarkSpec(TextLabel("© Test"), position="bottom-right", scale=0.2, opacity=1.0, margin=20)

    out = renderer.render_image(src, spec, settings_for(tmp_path))

    with Image.open(out) as result:
        bbox = ImageChops.difference(result.convert("RGB"), original).getbbox()
    # overlay is 240x96 at (740, 684)
    assert bbox is not None
    left, top, right, bottom = bbox
    assert left >= 740 and top >= 684
    assert right <= 980 and bottom <= 780


def test_zero_opacity_leaves_pixels_untouched(tmp_path):
    src = tmp_path / "a.png"
    original = Image.new("RGB", (200, 100), (12, 34, 56))
    original.save(src)

    out = renderer.render_image(src, WatermarkSpec(TextLabel("x"), opacity=0.0), settings_for(tmp_path))

    with Image.open(out) as result:
        assert ImageChops.difference(result.convert("RGB"), original).getbbox() is None


def test_transparent_png_stays_transparent(tmp_path):
    src = tmp_path / "a.png"
    Image.new("RGBA", (200, 100), (0, 0, 0, 0)).save(src)

    out = renderer.render_image(src, WatermarkSpec(TextLabel("x"), opacity=1.0), settings_for(tmp_path))

    with Image.open(out) as result:
        assert result.mode == "RGBA"
        assert result.getpixel((0, 0))[3] == 0


def test_animated_gif_is_flattened(tmp_path):
    src = tmp_path / "anim.gif"
    frames = [Image.new("RGB", (64, 64), c) for c in ((255, 0, 0), (0, 255, 0))]
    frames[0].save(src, save_all=True, append_images=frames[1:], duration=100, loop=0)

    out = renderer.render_image(src, WatermarkSpec(TextLabel("wm")), settings_for(tmp_path))

    assert out.name == "anim_wm.gif"
    with Image.open(out) as result:
        assert result.format == "GIF"
        assert getattr(result, "n_frames", 1) == 1


def test_existing_output_is_overwritten(tmp_path):
    src = tmp_path / "a.png"
    Image.new("RGB", (50, 50), (0, 0, 0)).save(src)
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    (out_dir / "a_wm.png").write_bytes(b"stale")

    out = renderer.render_image(src, WatermarkSpec(TextLabel("x")), settings_for(tmp_path))

    with Image.open(out) as result:
        assert result.size == (50, 50)


def test_corrupt_image_raises_read_error(tmp_path):
    src = tmp_path / "bad.jpg"
    src.write_bytes(b"not really a jpeg")

    with pytest.raises(ReadError):
        renderer.render_image(src, WatermarkSpec(TextLabel("x")), settings_for(tmp_path))

    assert not (tmp_path / "out" / "bad_wm.jpg").exists()


def test_oversized_image_raises_read_error(tmp_path, monkeypatch):
    src = tmp_path / "huge.png"
    Image.new("RGB", (200, 200)).save(src)
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 5000)

    with pytest.raises(ReadError):
        renderer.render_image(src, WatermarkSpec(TextLabel("x")), settings_for(tmp_path))


def test_unwritable_output_raises_write_error(tmp_path):
    src = tmp_path / "a.png"
    Image.new("RGB", (120, 80)).save(src)
    blocker = tmp_path / "out"
    blocker.write_text("a file, not a folder", encoding="utf-8")

    with pytest.raises(WriteError):
        renderer.render_image(src, WatermarkSpec(TextLabel("x")), settings_for(tmp_path))


def test_heic_round_trip(tmp_path):
    pytest.importorskip("pillow_heif")
    if not renderer.can_write("HEIF"):
        pytest.skip("no HEIF encoder in this build")
    src = tmp_path / "photo.heic"
    Image.new("RGB", (320, 240), (30, 120, 200)).save(src, format="HEIF", quality=90)
    spec = WatermarkSpec(TextLabel("© Test"), position="top-left", opacity=1.0)

    out = renderer.render_image(src, spec, settings_for(tmp_path))

    assert out == tmp_path / "out" / "photo_wm.heic"
    with Image.open(out) as result:
        assert result.format == "HEIF"
        assert result.size == (320, 240)


def test_choose_format_falls_back_without_encoder(monkeypatch):
    monkeypatch.setattr(renderer, "can_write", lambda fmt: fmt != "HEIF")

    assert renderer.choose_format(".heic") == "JPEG"
    assert renderer.choose_format(".webp") == "WEBP"


def test_save_options_per_format():
    info = {"exif": b"Exif\x00\x00data", "icc_profile": b"icc", "dpi": (300, 300)}

    jpeg = renderer.save_options("JPEG", 80, info)
    assert jpeg["quality"] == 80 and jpeg["optimize"] is True
    assert jpeg["exif"] == info["exif"] and jpeg["icc_profile"] == b"icc" and jpeg["dpi"] == (300, 300)

    assert renderer.save_options("WEBP", 70, {})["quality"] == 70
    assert renderer.save_options("AVIF", 60, {})["quality"] == 60

    tiff = renderer.save_options("TIFF", 80, {})
    assert tiff["compression"] == "tiff_lzw" and "quality" not in tiff
    assert "quality" not in renderer.save_options("PNG", 80, {})
    assert "quality" not in renderer.save_options("GIF", 80, {})


def test_output_mode():
    assert renderer.output_mode("RGBA", True, "JPEG") == "RGB"
    assert renderer.output_mode("RGBA", True, "PNG") == "RGBA"
    assert renderer.output_mode("CMYK", False, "JPEG") == "CMYK"
    assert renderer.output_mode("L", False, "PNG") == "L"
    assert renderer.output_mode("P", False, "WEBP") == "RGB"
