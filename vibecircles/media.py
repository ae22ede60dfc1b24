"""
Image upload pipeline.

An upload is read in chunks and rejected as soon as it passes
MAX_FILE_SIZE, so nothing reaches disk for an oversized file. Accepted
uploads are written once, re-encoded into their derivatives, and the
original is removed. Any failure removes every file the upload produced.
"""
import io
import logging
import os
import uuid

import aiofiles
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from PIL import Image, ImageOps

from . import config
from .errors import MediaError, NotFoundError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {'image/jpeg', 'image/png', 'image/gif', 'image/webp'}
CHUNK_SIZE = 64 * 1024

IMAGE_MAX = (800, 800)
IMAGE_QUALITY = 80
THUMB_SIZE = (200, 200)
THUMB_QUALITY = 70
AVATAR_SIZE = (300, 300)
AVATAR_QUALITY = 85

PUBLIC_PREFIX = '/uploads/'


def _bounded(data: bytes, size, quality: int) -> bytes:
    """Fit inside `size` keeping aspect ratio; never enlarges."""
    with Image.open(io.BytesIO(data)) as img:
        img = img.convert('RGB')
        img.thumbnail(size, Image.Resampling.LANCZOS)
        out = io.BytesIO()
        img.save(out, format='JPEG', quality=quality, optimize=True)
        return out.getvalue()


def _cropped(data: bytes, size, quality: int) -> bytes:
    """Scale and center-crop to exactly `size`."""
    with Image.open(io.BytesIO(data)) as img:
        img = ImageOps.fit(img.convert('RGB'), size, Image.Resampling.LANCZOS)
        out = io.BytesIO()
        img.save(out, format='JPEG', quality=quality, optimize=True)
        return out.getvalue()


class MediaStore:
    """Local-disk storage for uploaded images, served under /uploads/."""

    def __init__(self, root: str = None, max_size: int = None):
        self.root = root or config.UPLOAD_DIR
        self.max_size = max_size or config.MAX_FILE_SIZE

    def path_for(self, filename: str) -> str:
        return os.path.join(self.root, filename)

    @staticmethod
    def url_for(filename: str) -> str:
        return f'{PUBLIC_PREFIX}{filename}'

    @staticmethod
    def check_type(file: UploadFile):
        if file.content_type not in ALLOWED_TYPES:
            raise MediaError('Invalid file type. Only JPEG, PNG, GIF, and WebP images are allowed.')

    async def read_limited(self, file: UploadFile) -> bytes:
        buf = bytearray()
        while True:
            chunk = await file.read(CHUNK_SIZE)
            if not chunk:
                break
            buf.extend(chunk)
            if len(buf) > self.max_size:
                raise MediaError('File too large')
        if not buf:
            raise MediaError('Empty file')
        return bytes(buf)

    async def _write(self, filename: str, data: bytes):
        os.makedirs(self.root, exist_ok=True)
        async with aiofiles.open(self.path_for(filename), 'wb') as f:
            await f.write(data)

    def _remove(self, filename: str) -> bool:
        path = self.path_for(filename)
        if os.path.exists(path):
            os.remove(path)
            return True
        return False

    async def _process(self, file: UploadFile, derivatives) -> dict:
        """
        Store the upload, build each (filename, transform) derivative from
        it, then drop the original. Returns {filename: size_in_bytes}.
        """
        self.check_type(file)
        data = await self.read_limited(file)
        ext = os.path.splitext(file.filename or '')[1].lower()[:10]
        original = f'{uuid.uuid4().hex}{ext}'
        written = [original]
        sizes = {}
        try:
            await self._write(original, data)
            for name, transform in derivatives:
                out = await run_in_threadpool(transform, data)
                written.append(name)
                await self._write(name, out)
                sizes[name] = len(out)
            self._remove(original)
        except Exception as e:
            for name in written:
                self._remove(name)
            logger.warning({'msg': 'media_processing_failed', 'filename': file.filename, 'error': str(e)})
            raise MediaError('Invalid image file') from e
        return sizes

    async def save_image(self, file: UploadFile) -> dict:
        key = uuid.uuid4().hex
        processed, thumb = f'processed_{key}.jpg', f'thumb_{key}.jpg'
        sizes = await self._process(file, [
            (processed, lambda d: _bounded(d, IMAGE_MAX, IMAGE_QUALITY)),
            (thumb, lambda d: _cropped(d, THUMB_SIZE, THUMB_QUALITY)),
        ])
        return {
            'filename': processed,
            'original_name': file.filename,
            'url': self.url_for(processed),
            'thumbnail_url': self.url_for(thumb),
            'size': sizes[processed],
            'mimetype': 'image/jpeg',
        }

    async def save_avatar(self, file: UploadFile) -> dict:
        name = f'avatar_{uuid.uuid4().hex}.jpg'
        await self._process(file, [(name, lambda d: _cropped(d, AVATAR_SIZE, AVATAR_QUALITY))])
        return {'filename': name, 'url': self.url_for(name)}

    def delete(self, filename: str):
        """Remove a stored file and, for processed images, its thumbnail."""
        if not filename or os.path.basename(filename) != filename or filename.startswith('.'):
            raise MediaError('Invalid filename')
        if not self._remove(filename):
            raise NotFoundError('File not found')
        if filename.startswith('processed_'):
            self._remove('thumb_' + filename[len('processed_'):])

    def delete_url(self, url: str | None):
        # only files this store handed out
        if not url or not url.startswith(PUBLIC_PREFIX):
            return
        name = url[len(PUBLIC_PREFIX):]
        if os.path.basename(name) == name:
            self._remove(name)


media_store = MediaStore()
