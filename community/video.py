"""
Bunny Stream API client.

Videos are created in the configured library, their bytes are PUT to the
video endpoint, and transcoding is tracked through the video status field:

    0=created, 1=uploaded, 2=processing, 3=transcoding, 4=finished, 5=error
"""

import logging

import requests
from django.conf import settings

from .exceptions import VideoServiceError

logger = logging.getLogger(__name__)

STATUS_FINISHED = 4
STATUS_ERROR = 5


class BunnyStreamClient:
    BASE_URL = 'https://video.bunnycdn.com'

    def __init__(self, api_key=None, library_id=None, cdn_hostname=None, timeout=None, session=None):
        self.api_key = api_key if api_key is not None else settings.BUNNY_STREAM_API_KEY
        self.library_id = str(library_id if library_id is not None else settings.BUNNY_STREAM_LIBRARY_ID)
        self.cdn_hostname = cdn_hostname or settings.BUNNY_STREAM_CDN_HOSTNAME
        self.timeout = timeout or settings.BUNNY_STREAM_TIMEOUT
        self.session = session or requests.Session()

    @property
    def configured(self):
        return bool(self.api_key and self.library_id)

    def _headers(self, **extra):
        headers = {'AccessKey': self.api_key, 'Accept': 'application/json'}
        headers.update(extra)
        return headers

    def video_url(self, video_id):
        return f"{self.BASE_URL}/library/{self.library_id}/videos/{video_id}"

    def describe(self, video_id):
        """Public URLs for a video in this library."""
        return {
            'videoId': video_id,
            'libraryId': self.library_id,
            'uploadUrl': self.video_url(video_id),
            'thumbnailUrl': f"https://{self.cdn_hostname}/{video_id}/thumbnail.jpg",
            'playbackUrl': f"https://iframe.mediadelivery.net/embed/{self.library_id}/{video_id}",
            'hlsUrl': f"https://{self.cdn_hostname}/{video_id}/playlist.m3u8",
        }

    def _require_config(self):
        if not self.configured:
            logger.error("Bunny Stream is not configured")
            raise VideoServiceError('Videofunksjon er ikke konfigurert', status_code=500)

    def create_video(self, title):
        self._require_config()
        response = self.session.post(
            f"{self.BASE_URL}/library/{self.library_id}/videos",
            json={'title': title},
            headers=self._headers(**{'Content-Type': 'application/json'}),
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(f"Bunny create video error {response.status_code}: {response.text[:200]}")
            raise VideoServiceError('Kunne ikke opprette video', status_code=response.status_code)

        guid = response.json()['guid']
        logger.info(f"Created Bunny video {guid}")
        return self.describe(guid)

    def upload(self, video_id, data):
        """
        PUT the video bytes. ``data`` may be bytes or a file-like object;
        file-like objects are streamed by requests as they are read.
        """
        self._require_config()
        response = self.session.put(
            self.video_url(video_id),
            data=data,
            headers=self._headers(),
            # Uploads of several hundred MB need far longer than API calls
            timeout=(self.timeout, None),
        )
        if not response.ok:
            logger.error(f"Bunny upload error {response.status_code}: {response.text[:200]}")
            raise VideoServiceError('Kunne ikke laste opp video', status_code=response.status_code)

    def get_status(self, video_id):
        self._require_config()
        response = self.session.get(
            self.video_url(video_id),
            headers=self._headers(),
            timeout=self.timeout,
        )
        if not response.ok:
            raise VideoServiceError('Kunne ikke hente videostatus', status_code=response.status_code)

        data = response.json()
        return {
            'status': data.get('status'),
            'encodeProgress': data.get('encodeProgress'),
            'length': data.get('length'),
            'width': data.get('width'),
            'height': data.get('height'),
            'isReady': data.get('status') == STATUS_FINISHED,
        }
