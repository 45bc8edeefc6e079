"""
================================================================================
COMPOSER MEDIA PIPELINE
================================================================================

MODULE PURPOSE
================================================================================
Everything between "the user picked a file" and "the file has a public URL":

1. validate_media_file()  - type, count and size checks before queueing
2. compress_image()       - Pillow re-encode of large images to ~200 KB JPEG
3. upload_image()         - Django default storage (Cloudinary in production)
4. upload_video()         - Bunny Stream create + streamed PUT
5. VideoStatusPoller      - background polling until transcoding finishes

Progress is reported as an integer percentage through an ``on_progress``
callback. Uploads are not retried; callers store the error on the media item.
================================================================================
"""

import io
import logging
import threading
import time

import requests
from django.conf import settings
from django.core.cache import cache
from django.core.files.base import File
from django.core.files.storage import default_storage
from django.db import DatabaseError
from PIL import Image, ImageOps, UnidentifiedImageError

from ..exceptions import MediaUploadError, MediaValidationError, VideoServiceError
from ..models import AppSetting
from .state import SUPPORTED_IMAGE_FORMATS, SUPPORTED_VIDEO_FORMATS

logger = logging.getLogger(__name__)

MEDIA_SETTINGS_CACHE_KEY = 'community:media_settings'
FALLBACK_MAX_FILE_SIZE_MB = 20

POST_IMAGE_MAX_DIMENSION = 1200
POST_IMAGE_QUALITY = 75
POST_IMAGE_MAX_BYTES = 200 * 1024


# ============================================================================
# MEDIA SETTINGS
# ============================================================================

def get_media_settings():
    """
    Media limits from ``AppSetting`` rows layered over ``MEDIA_DEFAULTS``.

    Cached for MEDIA_SETTINGS_CACHE_TTL seconds. Unparsable values fall back to
    the default for that key; a database failure returns the defaults uncached.
    """
    cached = cache.get(MEDIA_SETTINGS_CACHE_KEY)
    if cached is not None:
        return cached

    media_settings = dict(settings.MEDIA_DEFAULTS)
    numeric_keys = ('max_file_size_mb', 'max_images_per_post', 'max_image_dimension')

    try:
        rows = list(
            AppSetting.objects.filter(key__startswith='media_').values_list('key', 'value')
        )
    except DatabaseError:
        logger.exception("Failed to fetch media settings")
        return media_settings

    for key, value in rows:
        name = key[len('media_'):]
        if name in numeric_keys:
            try:
                number = float(value)
            except (TypeError, ValueError):
                continue
            if number > 0:
                media_settings[name] = int(number) if number.is_integer() else number
        elif name == 'allowed_types' and isinstance(value, list):
            media_settings[name] = value

    cache.set(MEDIA_SETTINGS_CACHE_KEY, media_settings, settings.MEDIA_SETTINGS_CACHE_TTL)
    return media_settings


def clear_media_settings_cache():
    cache.delete(MEDIA_SETTINGS_CACHE_KEY)


# ============================================================================
# VALIDATION
# ============================================================================

def validate_media_file(upload, media, config, media_settings=None):
    """
    Check a picked file against the queued media and the configured limits.

    Returns 'image' or 'video'; raises MediaValidationError otherwise.
    """
    content_type = (getattr(upload, 'content_type', '') or '').lower()
    is_image = content_type in SUPPORTED_IMAGE_FORMATS
    is_video = content_type in SUPPORTED_VIDEO_FORMATS

    if not is_image and not is_video:
        raise MediaValidationError('Filtypen støttes ikke', code='unsupported_type')

    max_images = config['MAX_IMAGES_PER_POST']
    if is_image and sum(1 for item in media if item.type == 'image') >= max_images:
        raise MediaValidationError(f'Maks {max_images} bilder per innlegg', code='too_many_images')

    if is_video and any(item.type == 'video' for item in media):
        raise MediaValidationError('Kun én video per innlegg', code='too_many_videos')

    if is_image:
        if media_settings is None:
            media_settings = get_media_settings()
        max_mb = media_settings.get('max_file_size_mb') or FALLBACK_MAX_FILE_SIZE_MB
        if upload.size > max_mb * 1024 * 1024:
            raise MediaValidationError(f'Bildet er for stort (maks {max_mb} MB)', code='too_large')
        return 'image'

    max_video_mb = config['MAX_VIDEO_SIZE_MB']
    if upload.size > max_video_mb * 1024 * 1024:
        raise MediaValidationError(f'Videoen er for stor (maks {max_video_mb} MB)', code='too_large')
    return 'video'


# ============================================================================
# IMAGE COMPRESSION
# ============================================================================

class CompressedImage:
    def __init__(self, data, content_type, width=None, height=None):
        self.data = data
        self.content_type = content_type
        self.width = width
        self.height = height

    @property
    def size(self):
        return len(self.data)


def _dimensions(data):
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except Image.DecompressionBombError as e:
        raise MediaValidationError('Bildet har for mange piksler', code='too_many_pixels') from e
    except (UnidentifiedImageError, OSError):
        return None, None


def compress_image(data, content_type='image/jpeg', max_dimension=POST_IMAGE_MAX_DIMENSION,
                   quality=POST_IMAGE_QUALITY, max_bytes=POST_IMAGE_MAX_BYTES):
    """
    Re-encode an image as a JPEG no larger than ``max_dimension`` on its
    longest side.

    Images already at or under ``max_bytes`` are returned untouched. If Pillow
    cannot decode the image the original bytes are returned; images over
    Pillow's pixel limit raise MediaValidationError.
    """
    if len(data) <= max_bytes:
        width, height = _dimensions(data)
        return CompressedImage(data, content_type, width, height)

    try:
        with Image.open(io.BytesIO(data)) as image:
            image = ImageOps.exif_transpose(image)
            if image.mode not in ('RGB', 'L'):
                image = image.convert('RGB')
            image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

            output = io.BytesIO()
            image.save(output, format='JPEG', quality=quality, optimize=True)
            return CompressedImage(output.getvalue(), 'image/jpeg', *image.size)
    except Image.DecompressionBombError as e:
        raise MediaValidationError('Bildet har for mange piksler', code='too_many_pixels') from e
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"Image compression failed, uploading original: {e}")
        return CompressedImage(data, content_type)


# ============================================================================
# PROGRESS REPORTING
# ============================================================================

class ProgressFile(File):
    """
    File wrapper that reports ``on_progress(loaded, total)`` as it is read.

    Works for Django storage backends (which read through ``chunks()``) and
    for requests bodies (which read in blocks after sizing with ``len()``).
    """

    def __init__(self, file, name=None, on_progress=None):
        super().__init__(file, name=name)
        self.total = self.size
        self.loaded = 0
        self.on_progress = on_progress

    def read(self, *args):
        data = self.file.read(*args)
        if data:
            self.loaded = min(self.loaded + len(data), self.total)
            if self.on_progress:
                self.on_progress(self.loaded, self.total)
        return data

    def seek(self, *args):
        position = self.file.seek(*args)
        self.loaded = self.file.tell()
        return position


def _read_upload(upload):
    if hasattr(upload, 'seek'):
        upload.seek(0)
    return upload.read()


# ============================================================================
# UPLOADS
# ============================================================================

def upload_image(item, user_id, on_progress=None, storage=None):
    """
    Compress and store one image.

    Progress: 1 at start, 10 once compressed, then 10-100 across the byte
    stream. Returns ``(url, CompressedImage)``.
    """
    storage = storage or default_storage
    report = on_progress or (lambda percent: None)
    report(1)

    source = item.edited_file or item.file
    try:
        raw = _read_upload(source)
    except OSError as e:
        raise MediaUploadError('Kunne ikke lese bildet', media_id=item.id) from e

    compressed = compress_image(raw, content_type=item.content_type or 'image/jpeg')
    report(10)

    name = f"post-images/{user_id}-{int(time.time() * 1000)}-{item.id}.jpg"

    def stream_progress(loaded, total):
        if total:
            report(10 + round(round(loaded / total * 100) * 0.9))

    body = ProgressFile(io.BytesIO(compressed.data), name=name, on_progress=stream_progress)
    try:
        saved_name = storage.save(name, body)
        url = storage.url(saved_name)
    except Exception as e:
        # Storage backends raise their own client errors (Cloudinary, OSError, ...)
        logger.exception(f"Image upload failed for {name}")
        raise MediaUploadError('Kunne ikke laste opp bildet', media_id=item.id) from e

    logger.info(f"Uploaded image {saved_name} ({compressed.size} bytes)")
    return url, compressed


def upload_video(item, client, title, on_progress=None):
    """
    Create a Bunny Stream video and stream the bytes to it.

    Returns the client's descriptor dict (videoId, libraryId, thumbnailUrl,
    playbackUrl, hlsUrl). Raises VideoServiceError or MediaUploadError.
    """
    report = on_progress or (lambda percent: None)

    descriptor = client.create_video(title)
    report(1)

    def stream_progress(loaded, total):
        if total:
            report(max(1, round(loaded / total * 100)))

    source = item.file
    if hasattr(source, 'seek'):
        source.seek(0)
    body = ProgressFile(source, name=getattr(source, 'name', None), on_progress=stream_progress)

    try:
        client.upload(descriptor['videoId'], body)
    except requests.RequestException as e:
        logger.exception(f"Video upload failed for {descriptor['videoId']}")
        raise MediaUploadError('Kunne ikke laste opp video', media_id=item.id) from e

    report(100)
    return descriptor


# ============================================================================
# VIDEO STATUS POLLING
# ============================================================================

class VideoStatusPoller(threading.Thread):
    """
    Poll a video's transcoding status until it is ready or the timeout passes.

    ``on_done(ready, status)`` is called exactly once unless the poller is
    cancelled first. Status errors are logged and polling continues.

    Example:
        poller = VideoStatusPoller(client, video_id, on_done=mark_ready)
        poller.start()
        ...
        poller.cancel()
    """

    def __init__(self, client, video_id, on_done, interval=None, timeout=None, clock=time.monotonic):
        super().__init__(name=f"video-poll-{video_id}", daemon=True)
        composer_config = settings.COMPOSER
        self.client = client
        self.video_id = video_id
        self.on_done = on_done
        self.interval = composer_config['VIDEO_POLL_INTERVAL'] if interval is None else interval
        self.timeout = composer_config['VIDEO_POLL_TIMEOUT'] if timeout is None else timeout
        self._clock = clock
        self._cancelled = threading.Event()

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def cancel(self):
        self._cancelled.set()

    def check(self):
        try:
            return self.client.get_status(self.video_id)
        except (VideoServiceError, requests.RequestException) as e:
            logger.warning(f"Video status check failed for {self.video_id}: {e}")
            return None

    def run(self):
        deadline = self._clock() + self.timeout
        status = None
        ready = False

        while not self._cancelled.is_set():
            status = self.check()
            if status and status.get('isReady'):
                ready = True
                break
            if self._clock() >= deadline:
                logger.info(f"Stopped polling video {self.video_id} after {self.timeout}s")
                break
            self._cancelled.wait(self.interval)

        if not self._cancelled.is_set():
            self.on_done(ready, status)
