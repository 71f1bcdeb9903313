"""Image ingestion pipeline: validate, compress and upload asset photos."""

import asyncio
import logging
import os
import random
import re
import string
import time
from dataclasses import dataclass
from io import BytesIO
from typing import Callable, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from asset_tracker.config import Settings
from asset_tracker.core.errors import ImageUploadError, ImageValidationError
from asset_tracker.core.storage import BlobNotFoundError, BlobStore, StorageError

logger = logging.getLogger(__name__)

OUTPUT_CONTENT_TYPE = "image/jpeg"
MIN_QUALITY = 40
QUALITY_STEP = 10
# Each extra pass scales the longest side by this factor once quality bottoms out
DOWNSCALE_FACTOR = 0.75
MAX_DOWNSCALE_PASSES = 3

_KEY_ALPHABET = string.digits + string.ascii_lowercase
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class ImageUpload:
    """One submitted photo."""

    content: bytes
    content_type: str
    filename: str
    size: int | None = None

    @property
    def size_bytes(self) -> int:
        return self.size if self.size is not None else len(self.content)


def _encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buf = BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def _scale_to_fit(img: Image.Image, max_dim: int) -> Image.Image:
    w, h = img.size
    if max(w, h) <= max_dim:
        return img
    s = max_dim / max(w, h)
    return img.resize((max(1, int(w * s)), max(1, int(h * s))), Image.Resampling.LANCZOS)


def compress_image(
    content: bytes,
    max_dimension: int = 1920,
    target_bytes: int = 1024 * 1024,
    quality: float = 0.8,
) -> bytes:
    """Re-encode an image as JPEG no larger than ``max_dimension`` on either side.

    Starts at ``quality`` and walks a quality ladder, then a downscale ladder,
    until the output fits ``target_bytes``. The target is best effort: the
    smallest attempt is returned when nothing fits.

    Args:
        content: Raw image bytes in any format Pillow can decode
        max_dimension: Longest side of the output in pixels
        target_bytes: Desired upper bound of the output size
        quality: Initial quality factor in (0, 1]

    Returns:
        bytes: JPEG encoded image

    Raises:
        ValueError: If the content cannot be decoded as an image
    """
    try:
        with Image.open(BytesIO(content)) as loaded:
            img = ImageOps.exif_transpose(loaded)
            img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Cannot decode image: {e}") from e

    if img.mode in ("RGBA", "LA", "P"):
        if img.mode == "P":
            img = img.convert("RGBA")
        bg = Image.new("RGB", img.size, (255, 255, 255))
        bg.paste(img, mask=img.split()[-1])
        img = bg
    elif img.mode != "RGB":
        img = img.convert("RGB")

    start_quality = max(MIN_QUALITY, min(95, int(round(quality * 100))))
    quality_levels = list(range(start_quality, MIN_QUALITY - 1, -QUALITY_STEP))
    if quality_levels[-1] != MIN_QUALITY:
        quality_levels.append(MIN_QUALITY)

    resized = _scale_to_fit(img, max_dimension)
    best = b""
    for q in quality_levels:
        raw = _encode_jpeg(resized, q)
        if not best or len(raw) < len(best):
            best = raw
        if len(raw) <= target_bytes:
            return raw

    dim = max(resized.size)
    for _ in range(MAX_DOWNSCALE_PASSES):
        dim = max(1, int(dim * DOWNSCALE_FACTOR))
        raw = _encode_jpeg(_scale_to_fit(resized, dim), MIN_QUALITY)
        if len(raw) < len(best):
            best = raw
        if len(raw) <= target_bytes:
            return raw

    logger.warning(f"Compressed image is still {len(best)} bytes, above target of {target_bytes}")
    return best


def _random_token(length: int = 8) -> str:
    return "".join(random.choices(_KEY_ALPHABET, k=length))


def _safe_filename(filename: str) -> str:
    """Keep a readable, URL-safe stem and force the ``.jpg`` extension of the output."""
    stem, _ = os.path.splitext(os.path.basename(filename or ""))
    stem = _UNSAFE_FILENAME_CHARS.sub("_", stem).strip("._")[:100]
    return f"{stem or 'image'}.jpg"


class ImagePipeline:
    """Validates, compresses and uploads batches of asset photos.

    Batches are all-or-nothing: when any file fails, the files of the same
    batch that were already uploaded are deleted again (best effort) and no
    URL is returned.

    Args:
        blob_store: Destination for compressed photos
        key_prefix: Namespace prepended to every object key
        max_dimension: Longest side after compression
        target_bytes: Best-effort size target after compression
        quality: Initial JPEG quality factor
        clock: Time source for object keys, in seconds
    """

    def __init__(
        self,
        blob_store: BlobStore,
        key_prefix: str = "assets",
        max_dimension: int = 1920,
        target_bytes: int = 1024 * 1024,
        quality: float = 0.8,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.blob_store = blob_store
        self.key_prefix = key_prefix.strip("/")
        self.max_dimension = max_dimension
        self.target_bytes = target_bytes
        self.quality = quality
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, blob_store: BlobStore) -> "ImagePipeline":
        return cls(
            blob_store,
            key_prefix=settings.blob_key_prefix,
            max_dimension=settings.image_max_dimension,
            target_bytes=settings.image_target_bytes,
            quality=settings.image_quality,
        )

    def build_key(self, filename: str) -> str:
        millis = int(self._clock() * 1000)
        return f"{self.key_prefix}/{millis}-{_random_token()}-{_safe_filename(filename)}"

    @staticmethod
    def validate(files: Sequence[ImageUpload], existing: Sequence[str], max_count: int, max_bytes: int) -> None:
        """Reject a batch before any compression or network call.

        Raises:
            ImageValidationError: On count, type or size violations
        """
        if len(existing) + len(files) > max_count:
            raise ImageValidationError(
                f"Too many images: {len(existing)} existing + {len(files)} new exceeds the maximum of {max_count}"
            )

        for index, upload in enumerate(files):
            content_type = (upload.content_type or "").lower()
            if not content_type.startswith("image/"):
                raise ImageValidationError(
                    f"File {upload.filename!r} is not an image ({upload.content_type or 'unknown type'})",
                    index=index,
                    filename=upload.filename,
                )
            if upload.size_bytes > max_bytes:
                size_mb = upload.size_bytes / (1024 * 1024)
                max_mb = max_bytes / (1024 * 1024)
                raise ImageValidationError(
                    f"File {upload.filename!r} ({size_mb:.2f}MB) exceeds maximum allowed size ({max_mb:g}MB)",
                    index=index,
                    filename=upload.filename,
                )

    async def _process(self, index: int, upload: ImageUpload) -> str:
        try:
            compressed = await asyncio.to_thread(
                compress_image,
                upload.content,
                self.max_dimension,
                self.target_bytes,
                self.quality,
            )
        except ValueError as e:
            raise ImageValidationError(
                f"File {upload.filename!r} could not be processed: {e}",
                index=index,
                filename=upload.filename,
            ) from e

        key = self.build_key(upload.filename)
        try:
            url = await self.blob_store.put(key, compressed, OUTPUT_CONTENT_TYPE)
        except StorageError as e:
            raise ImageUploadError(
                f"Upload of {upload.filename!r} failed: {e}",
                index=index,
                filename=upload.filename,
            ) from e

        logger.info(f"Uploaded {upload.filename} as {key} ({upload.size_bytes} -> {len(compressed)} bytes)")
        return url

    async def ingest(
        self,
        files: Sequence[ImageUpload],
        existing: Sequence[str],
        max_count: int,
        max_bytes: int,
    ) -> list[str]:
        """Upload a batch of photos and append their URLs to ``existing``.

        Args:
            files: Photos in submission order
            existing: URLs already attached to the asset
            max_count: Maximum number of URLs after the batch
            max_bytes: Size ceiling of a single submitted file

        Returns:
            list[str]: ``existing`` followed by the new URLs, in submission order

        Raises:
            ImageValidationError: If the batch or one of its files is rejected
            ImageUploadError: If the blob store fails for one of the files
        """
        self.validate(files, existing, max_count, max_bytes)
        if not files:
            return list(existing)

        results = await asyncio.gather(
            *(self._process(index, upload) for index, upload in enumerate(files)),
            return_exceptions=True,
        )

        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            uploaded = [result for result in results if isinstance(result, str)]
            if uploaded:
                logger.warning(f"Discarding {len(uploaded)} uploaded image(s) of a failed batch")
                await self.discard(uploaded)
            raise failures[0]

        return [*existing, *results]

    async def discard(self, urls: Sequence[str]) -> None:
        """Delete blobs best effort. Failures are logged, never raised."""
        for url in urls:
            key = self.blob_store.key_for_url(url)
            if key is None:
                logger.warning(f"Not deleting {url}: not managed by the configured blob store")
                continue
            try:
                await self.blob_store.delete(key)
                logger.info(f"Deleted blob {key}")
            except BlobNotFoundError:
                logger.warning(f"Blob {key} was already gone")
            except StorageError as e:
                logger.warning(f"Failed to delete blob {key}: {e}")
