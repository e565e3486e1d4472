import os
import re
import secrets
from datetime import timezone

from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from .errors import StorageError
from .utils import utc_now_naive

UPLOAD_PURPOSES = ('covers', 'content')
EXTENSION_MIME_TYPES = {
    'png': {'image/png'},
    'jpg': {'image/jpeg'},
    'jpeg': {'image/jpeg'},
    'gif': {'image/gif'},
    'webp': {'image/webp'},
}
_FILENAME_SANITIZER_RE = re.compile(r'[^a-z0-9.-]+')
_PATH_SEGMENT_RE = re.compile(r'^[A-Za-z0-9._-]+$')


def sanitize_filename(filename):
    cleaned = secure_filename(filename or '').lower().replace('_', '-')
    cleaned = _FILENAME_SANITIZER_RE.sub('', cleaned).strip('.-')
    return cleaned[:120]


def _stream_size(file):
    stream = file.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


class BlobStorage:
    """Uploaded files kept under a local root and served by public URL."""

    def __init__(self, root, public_base_url='', max_bytes=5 * 1024 * 1024, max_pixels=40_000_000,
                 allowed_mime_types=None):
        self.root = os.path.abspath(root)
        self.public_base_url = (public_base_url or '').rstrip('/')
        self.max_bytes = max_bytes
        self.max_pixels = max(1, int(max_pixels))
        self.allowed_mime_types = set(allowed_mime_types or {m for ms in EXTENSION_MIME_TYPES.values() for m in ms})

    @classmethod
    def from_config(cls, config):
        return cls(
            config['UPLOAD_FOLDER'],
            public_base_url=config.get('STORAGE_PUBLIC_BASE_URL', ''),
            max_bytes=config.get('MAX_UPLOAD_BYTES', 5 * 1024 * 1024),
            max_pixels=config.get('MAX_UPLOAD_IMAGE_PIXELS', 40_000_000),
            allowed_mime_types=config.get('ALLOWED_UPLOAD_MIME_TYPES'),
        )

    def build_path(self, purpose, filename, now=None):
        """``<purpose>/<year>/<month>/<timestamp>-<random>-<filename>``"""
        if purpose not in UPLOAD_PURPOSES:
            raise StorageError(f'Unknown upload purpose: {purpose}', reason='unsupported_type',
                               user_message='Unknown upload destination.')
        name = sanitize_filename(filename)
        if not name:
            raise StorageError('Empty filename after sanitizing.', reason='unsupported_type',
                               user_message='Please choose a file with a valid name.')
        now = now or utc_now_naive()
        timestamp = int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)
        return f"{purpose}/{now.year}/{now.month:02d}/{timestamp}-{secrets.token_hex(3)}-{name}"

    def resolve(self, path):
        """Absolute file path for a stored path, or None when it escapes the root."""
        segments = (path or '').split('/')
        if not segments or any(not _PATH_SEGMENT_RE.match(segment) or segment in ('.', '..') for segment in segments):
            return None
        full_path = os.path.abspath(os.path.join(self.root, *segments))
        try:
            if os.path.commonpath([self.root, full_path]) != self.root:
                return None
        except ValueError:
            return None
        return full_path

    def validate(self, file):
        if not file or not file.filename:
            raise StorageError('No file provided.', reason='unsupported_type', user_message='Please choose an image to upload.')

        size = _stream_size(file)
        if size > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise StorageError(f'Upload is {size} bytes.', reason='too_large',
                               user_message=f'Image is too large. The limit is {limit_mb:g} MB.')

        filename = secure_filename(file.filename)
        extension = filename.rsplit('.', 1)[1].lower() if '.' in filename else ''
        mime_type = (file.mimetype or '').split(';', 1)[0].lower()
        if (
            extension not in EXTENSION_MIME_TYPES
            or mime_type not in self.allowed_mime_types
            or mime_type not in EXTENSION_MIME_TYPES[extension]
        ):
            raise StorageError(f'Rejected upload {filename!r} ({mime_type}).', reason='unsupported_type',
                               user_message='Please select an image file (PNG, JPEG, GIF or WebP).')

        try:
            with Image.open(file.stream) as image:
                width, height = image.size
                if width < 1 or height < 1 or (width * height) > self.max_pixels:
                    raise StorageError(f'Image dimensions {width}x{height} rejected.', reason='invalid_image',
                                       user_message='Image dimensions are not supported.')
                image.verify()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            raise StorageError(f'Unreadable image: {exc}', reason='invalid_image',
                               user_message='The file is not a valid image.') from exc
        finally:
            file.stream.seek(0)

    def upload(self, path, file):
        full_path = self.resolve(path)
        if not full_path:
            raise StorageError(f'Invalid storage path: {path}', reason='io')
        self.validate(file)
        if os.path.exists(full_path):
            raise StorageError(f'{path} already exists.', reason='io', user_message='Upload failed. Please retry.')
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            file.save(full_path)
        except OSError as exc:
            raise StorageError(f'Writing {path} failed: {exc}', reason='io',
                               user_message='Upload failed. Please retry.') from exc
        return path

    def get_public_url(self, path):
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        return f"/uploads/{path}"

    def store_image(self, file, purpose):
        path = self.build_path(purpose, getattr(file, 'filename', ''))
        self.upload(path, file)
        return self.get_public_url(path)
