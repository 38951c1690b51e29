import pytest

from healthbot.constants import MEDIA_KIND_IMAGE, MEDIA_KIND_PDF, MEDIA_KIND_UNSUPPORTED
from healthbot.ingestion import ExtractionFailed, IngestionNormalizer, UnsupportedMediaKind, media_kind_for


@pytest.mark.parametrize(
    "mime, expected",
    [
        ("application/pdf", MEDIA_KIND_PDF),
        ("image/jpeg", MEDIA_KIND_IMAGE),
        ("IMAGE/PNG", MEDIA_KIND_IMAGE),
        ("text/plain", MEDIA_KIND_UNSUPPORTED),
        (None, MEDIA_KIND_UNSUPPORTED),
    ],
)
def test_media_kind_for(mime, expected):
    assert media_kind_for(mime) == expected


def test_unsupported_kind():
    with pytest.raises(UnsupportedMediaKind):
        IngestionNormalizer().extract(b"hello", MEDIA_KIND_UNSUPPORTED)


def test_corrupt_image():
    with pytest.raises(ExtractionFailed):
        IngestionNormalizer().extract(b"definitely not an image", MEDIA_KIND_IMAGE)


def test_corrupt_pdf():
    with pytest.raises(ExtractionFailed):
        IngestionNormalizer().extract(b"definitely not a pdf", MEDIA_KIND_PDF)


def test_empty_ocr_output_is_failure(monkeypatch):
    normalizer = IngestionNormalizer()
    monkeypatch.setattr(normalizer, "_extract_image", lambda payload: "   \n")
    with pytest.raises(ExtractionFailed):
        normalizer.extract(b"...", MEDIA_KIND_IMAGE)


def test_text_is_stripped(monkeypatch):
    normalizer = IngestionNormalizer()
    monkeypatch.setattr(normalizer, "_extract_pdf", lambda payload: "\n Глюкоза 5.1 \n")
    assert normalizer.extract(b"...", MEDIA_KIND_PDF) == "Глюкоза 5.1"
