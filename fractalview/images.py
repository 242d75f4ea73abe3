"""Publishing rendered images into the served store and retiring old ones."""

from __future__ import annotations

import errno
import os
import secrets
import shutil
import struct
import time
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlsplit

import PIL.Image

from .diagnostics import log
from .errors import IOFailure, RetireWarning

_PARTIAL_PREFIX = ".partial-"


@dataclass(frozen=True)
class ImageArtifact:
    """A published image and the reference callers persist for it."""

    id: str
    path: Path
    url: str
    width: int
    height: int

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "JPG":
        return "JPEG"
    if upper == "TIF":
        return "TIFF"
    return upper


def probe_image(path: Path) -> tuple[int, int, str]:
    """Return ``(width, height, format)`` of an image file, raising ``OSError`` if it does not decode."""

    try:
        with PIL.Image.open(path) as image:
            image.verify()
    except PIL.Image.DecompressionBombError as exc:
        raise OSError(f"{path} is too large to decode: {exc}") from exc
    except (SyntaxError, ValueError, struct.error) as exc:
        raise OSError(f"{path} is a damaged image: {exc}") from exc
    # verify() leaves the image unusable, so reopen for the size
    with PIL.Image.open(path) as image:
        width, height = image.size
        return width, height, image.format or ""


def _move_into(source: Path, destination: Path) -> None:
    try:
        os.replace(source, destination)
        return
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise

    # different filesystem: stage a full copy next to the target, then rename
    partial = destination.with_name(f"{_PARTIAL_PREFIX}{destination.name}")
    try:
        shutil.copyfile(source, partial)
        os.replace(partial, destination)
    except OSError:
        partial.unlink(missing_ok=True)
        raise
    source.unlink()


class ImageStore:
    """Directory of uniquely named images, written once and deleted by name."""

    def __init__(self, root: Union[str, Path], base_url: Optional[str] = None, image_format: str = "png") -> None:
        self.root = Path(root).expanduser().resolve()
        self.base_url = base_url.rstrip("/") if base_url else None
        self.image_format = (image_format or "png").lower().lstrip(".")
        self.pil_format = _pil_format_name(self.image_format)
        self.root.mkdir(parents=True, exist_ok=True)

    def _fresh_name(self) -> str:
        while True:
            name = f"{time.time_ns() // 1_000_000}-{secrets.token_hex(4)}.{self.image_format}"
            if not (self.root / name).exists():
                return name

    def _artifact(self, name: str, width: int, height: int) -> ImageArtifact:
        path = self.root / name
        url = f"{self.base_url}/{name}" if self.base_url else str(path)
        return ImageArtifact(id=name, path=path, url=url, width=width, height=height)

    def publish(self, captured_path: Union[str, Path]) -> ImageArtifact:
        """Move a captured render into the store under a new unique name."""

        source = Path(captured_path)
        if not source.is_file():
            raise IOFailure(f"captured image {source} does not exist")

        try:
            width, height, image_format = probe_image(source)
        except OSError as exc:
            raise IOFailure(f"captured image {source} is not a readable image: {exc}") from exc
        if image_format != self.pil_format:
            raise IOFailure(f"captured image {source} is {image_format or 'unknown'}, store serves {self.pil_format}")

        name = self._fresh_name()
        destination = self.root / name
        try:
            _move_into(source, destination)
        except OSError as exc:
            raise IOFailure(f"could not move {source} into image store {self.root}: {exc}") from exc

        artifact = self._artifact(name, width, height)
        log("Published %s (%dx%d)" % (artifact.url, width, height))
        return artifact

    def resolve_reference(self, reference: Union[ImageArtifact, str, Path]) -> Path:
        """Map an artifact, a bare id, a URL or a path onto a file inside the store."""

        if isinstance(reference, ImageArtifact):
            name = reference.id
        else:
            text = str(reference)
            if self.base_url and text.startswith(self.base_url + "/"):
                name = text[len(self.base_url) + 1:]
            elif "://" in text:
                name = urlsplit(text).path.rsplit("/", 1)[-1]
            else:
                path = Path(text)
                if path.is_absolute():
                    if path.parent.resolve() != self.root:
                        raise ValueError(f"{text} is not inside image store {self.root}")
                    name = path.name
                else:
                    name = text

        if not name or name in (".", "..") or "/" in name or "\\" in name or name.startswith(_PARTIAL_PREFIX):
            raise ValueError(f"invalid image reference {reference!r}")
        return self.root / name

    def retire(self, reference: Union[ImageArtifact, str, Path]) -> bool:
        """Delete a published image. Returns ``False`` if it was already gone."""

        path = self.resolve_reference(reference)
        try:
            path.unlink()
        except FileNotFoundError:
            warnings.warn(f"image {path.name} was already removed from {self.root}", RetireWarning, stacklevel=2)
            return False
        log("Retired %s" % path.name)
        return True

    def artifacts(self) -> list[ImageArtifact]:
        found = []
        for path in sorted(self.root.glob(f"*.{self.image_format}")):
            if path.name.startswith(_PARTIAL_PREFIX):
                continue
            try:
                width, height, _ = probe_image(path)
            except OSError:
                continue
            found.append(self._artifact(path.name, width, height))
        return found
