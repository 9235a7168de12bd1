import pytest
from pathlib import Path
from typing import Optional
from PIL import Image

from photosort.metadata import providers
from photosort.template.variables import VariableResolver

EXIF_DATETIME = 0x0132  # IFD0 "Image DateTime"


def write_jpeg(path: Path, exif_datetime: Optional[str] = None) -> Path:
    """Writes a tiny JPEG, with an EXIF DateTime tag when given."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with Image.new("RGB", (16, 16), color="red") as im:
        if exif_datetime is not None:
            exif = Image.Exif()
            exif[EXIF_DATETIME] = exif_datetime
            im.save(path, "JPEG", exif=exif)
        else:
            im.save(path, "JPEG")
    return path


@pytest.fixture
def make_jpeg():
    return write_jpeg


@pytest.fixture
def resolver():
    return VariableResolver()


@pytest.fixture
def no_birth_time(monkeypatch):
    """Behave like a filesystem without creation timestamps."""
    monkeypatch.setattr(providers, "birth_time", lambda st: None)
