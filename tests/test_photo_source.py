import io
import threading

import pytest
from PIL import Image

from fov_overlay import photo_source
from fov_overlay.models import DevelopCrop
from fov_overlay.photo_source import FilePhotoSource, parse_xmp_crop, render_cropped

XMP_ATTRIBUTES = """
<x:xmpmeta xmlns:x="adobe:ns:meta/">
 <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
  <rdf:Description rdf:about=""
    xmlns:crs="http://ns.adobe.com/camera-raw-settings/1.0/"
   crs:CropTop="0.2"
   crs:CropLeft="0.1"
   crs:CropBottom="0.8"
   crs:CropRight="0.9"
   crs:CropAngle="-3.5"
   crs:HasCrop="True"/>
 </rdf:RDF>
</x:xmpmeta>
"""

XMP_ELEMENTS = """
<rdf:Description xmlns:crs="http://ns.adobe.com/camera-raw-settings/1.0/">
  <crs:CropLeft>0.25</crs:CropLeft>
  <crs:CropTop>0.25</crs:CropTop>
  <crs:CropRight>0.75</crs:CropRight>
  <crs:CropBottom>0.75</crs:CropBottom>
</rdf:Description>
"""


def test_parse_xmp_attribute_form():
    assert parse_xmp_crop(XMP_ATTRIBUTES) == DevelopCrop(0.1, 0.2, 0.9, 0.8, -3.5)


def test_parse_xmp_element_form_from_bytes():
    crop = parse_xmp_crop(XMP_ELEMENTS.encode("utf-8"))
    assert crop == DevelopCrop(0.25, 0.25, 0.75, 0.75, 0.0)
    assert crop.is_cropped


def test_parse_xmp_has_crop_false_means_full_frame():
    xmp = XMP_ATTRIBUTES.replace('crs:HasCrop="True"', 'crs:HasCrop="False"')
    assert parse_xmp_crop(xmp) == DevelopCrop()


def test_parse_xmp_missing_or_malformed():
    assert parse_xmp_crop(None) == DevelopCrop()
    assert parse_xmp_crop("<x:xmpmeta/>") == DevelopCrop()
    assert parse_xmp_crop('crs:CropLeft="abc" crs:CropRight="0.5"') == DevelopCrop(right=0.5)


@pytest.fixture
def photo_file(tmp_path, monkeypatch):
    path = tmp_path / "photo.jpg"
    img = Image.new("RGB", (400, 200), (255, 0, 0))
    img.paste((0, 0, 255), (200, 0, 400, 200))
    img.save(path, "JPEG", quality=95)
    monkeypatch.setattr(photo_source, "read_exif_focal_lengths", lambda img: (300.0, None))
    return path


def test_file_source_metadata(photo_file):
    photo_file.with_suffix(".xmp").write_text(XMP_ELEMENTS, encoding="utf-8")
    photo = FilePhotoSource(photo_file)

    assert photo.formatted_focal_length() == "300.0 mm"
    assert photo.formatted_dimensions() == "400 x 200"
    assert photo.focal_length_35mm() is None
    assert photo.develop_crop() == DevelopCrop(0.25, 0.25, 0.75, 0.75)
    assert photo.original_path() == photo_file


def test_file_source_without_xmp_is_uncropped(photo_file):
    assert not FilePhotoSource(photo_file).develop_crop().is_cropped


def test_render_cropped_keeps_uncropped_image():
    img = Image.new("RGB", (40, 20))
    assert render_cropped(img, DevelopCrop()) is img


def test_render_cropped_extracts_region():
    img = Image.new("RGB", (400, 200), (255, 0, 0))
    img.paste((0, 0, 255), (200, 0, 400, 200))

    out = render_cropped(img, DevelopCrop(0.5, 0.0, 1.0, 1.0))

    assert out.size == (200, 200)
    r, g, b = out.getpixel((100, 100))
    assert b > 200 and r < 50


def test_thumbnail_delivered_through_callback(photo_file):
    photo_file.with_suffix(".xmp").write_text(XMP_ELEMENTS, encoding="utf-8")
    photo = FilePhotoSource(photo_file)
    done = threading.Event()
    received = {}

    def callback(data, error):
        received["data"], received["error"] = data, error
        done.set()

    photo.request_jpeg_thumbnail(100, 100, callback)

    assert done.wait(5)
    assert received["error"] is None
    with Image.open(io.BytesIO(received["data"])) as thumb:
        assert thumb.format == "JPEG"
        # 200 × 100 crop fitted into 100 × 100
        assert thumb.size == (100, 50)


def test_thumbnail_failure_reported_through_callback(tmp_path):
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"nope")
    done = threading.Event()
    received = {}

    def callback(data, error):
        received["data"], received["error"] = data, error
        done.set()

    FilePhotoSource(path).request_jpeg_thumbnail(100, 100, callback)

    assert done.wait(5)
    assert received["data"] is None
    assert received["error"]
