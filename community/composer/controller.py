"""
================================================================================
POST COMPOSER CONTROLLER
================================================================================

PostComposer owns one ComposerState for one author and exposes the operations
a composer form needs: field setters, media handling, drafts and submission.

State is only changed through dispatch(), which runs the pure reducer under a
lock because the autosave timer and the video poller dispatch from their own
threads. close() cancels both.

Example:
    composer = PostComposer(request.user)
    composer.set_title("Sámi nasjonaldag")
    composer.set_content("Feiring i #Tromsø", mentions=[])
    post_id = composer.submit()
    composer.close()
================================================================================
"""

import logging
import threading
import time
import uuid
from dataclasses import replace

from django.conf import settings
from django.db import DatabaseError
from PIL import Image

from ..exceptions import ComposerError, MediaValidationError
from ..models import Category, PostDraft, PostVideo
from ..video import BunnyStreamClient
from . import drafts
from .media import VideoStatusPoller, upload_image, upload_video, validate_media_file
from .state import (
    DIRTYING_ACTIONS,
    AddMedia,
    ComposerState,
    MediaItem,
    RemoveMedia,
    ReorderMedia,
    Reset,
    SetCategory,
    SetContent,
    SetContext,
    SetError,
    SetEventDetails,
    SetGeography,
    SetLinkPreview,
    SetPoll,
    SetPostType,
    SetScheduled,
    SetTitle,
    SetVisibility,
    UpdateMedia,
    UpdateMediaCaption,
    can_submit,
    extract_hashtags,
    is_valid,
    reduce,
)
from .submit import submit_post

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_SLUG = 'generelt'
EVENT_CATEGORY_SLUG = 'arrangement'


class PostComposer:

    def __init__(self, user, default_geography=None, group_id=None, on_success=None,
                 config=None, storage=None, video_client=None, autosave=False, poll_video=True):
        self.user = user
        self.default_geography = default_geography
        self.default_group_id = group_id
        self.on_success = on_success
        self.config = {**settings.COMPOSER, **(config or {})}
        self.storage = storage
        self.poll_video = poll_video
        self._video_client = video_client
        self._lock = threading.RLock()
        self._pollers = {}
        self._autosaver = drafts.DraftAutosaver(self, self.config['AUTOSAVE_INTERVAL']) if autosave else None

        self.state = self._initial_state()
        self._categories = {}
        self.load_categories()

    def _initial_state(self):
        return ComposerState(geography=self.default_geography, group_id=self.default_group_id)

    @property
    def video_client(self):
        if self._video_client is None:
            self._video_client = BunnyStreamClient()
        return self._video_client

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def dispatch(self, action):
        with self._lock:
            self.state = reduce(self.state, action)
            state = self.state
        if self._autosaver and isinstance(action, DIRTYING_ACTIONS) and state.is_dirty:
            self._autosaver.schedule()
        return state

    def load_categories(self):
        """Cache categories by slug and preselect 'generelt'."""
        try:
            self._categories = {c.slug: c.id for c in Category.objects.all()}
        except DatabaseError:
            logger.exception("Failed to load categories")
            return
        default = self._categories.get(DEFAULT_CATEGORY_SLUG)
        if default and not self.state.category_id:
            with self._lock:
                self.state = reduce(self.state, SetCategory(default))

    @property
    def is_valid(self):
        return is_valid(self.state)

    @property
    def can_submit(self):
        return can_submit(self.state)

    @property
    def has_draft(self):
        return self.state.draft_id is not None

    @property
    def is_saving_draft(self):
        return self.state.is_saving_draft

    @property
    def last_saved_at(self):
        return self.state.last_saved_at

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_title(self, title):
        self.dispatch(SetTitle(title))

    def set_content(self, content, mentions=()):
        self.dispatch(SetContent(content, tuple(mentions), tuple(extract_hashtags(content))))

    def set_post_type(self, post_type):
        self.dispatch(SetPostType(post_type))
        if post_type == 'event' and self._categories.get(EVENT_CATEGORY_SLUG):
            self.dispatch(SetCategory(self._categories[EVENT_CATEGORY_SLUG]))

    def set_visibility(self, visibility, circles=()):
        self.dispatch(SetVisibility(visibility, tuple(circles)))

    def set_category(self, category_id):
        self.dispatch(SetCategory(category_id))

    def set_event_details(self, date=None, time=None, end_time=None, location=None):
        self.dispatch(SetEventDetails(date=date, time=time, end_time=end_time, location=location))

    def set_geography(self, geography):
        self.dispatch(SetGeography(geography))

    def set_poll(self, poll):
        self.dispatch(SetPoll(poll))

    def set_scheduled_for(self, scheduled_for):
        self.dispatch(SetScheduled(scheduled_for))

    def set_link_preview(self, preview):
        self.dispatch(SetLinkPreview(preview))

    def set_context(self, group_id=None):
        self.dispatch(SetContext(group_id=group_id))

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def add_media(self, upload):
        """Queue an uploaded file. Returns the media id, or None if rejected."""
        try:
            media_type = validate_media_file(upload, self.state.media, self.config)
        except MediaValidationError as e:
            self.dispatch(SetError(e.message))
            return None

        item = MediaItem(
            id=str(uuid.uuid4()),
            type=media_type,
            file=upload,
            content_type=upload.content_type,
            size=upload.size,
            sort_order=len(self.state.media),
        )
        self.dispatch(AddMedia(item))
        return item.id

    def add_gif(self, url, preview='', width=None, height=None):
        item = MediaItem(
            id=str(uuid.uuid4()),
            type='gif',
            url=url,
            thumbnail_url=preview or url,
            width=width,
            height=height,
            sort_order=len(self.state.media),
            upload_progress=100,
        )
        self.dispatch(AddMedia(item))
        return item.id

    def remove_media(self, media_id):
        poller = self._pollers.pop(media_id, None)
        if poller:
            poller.cancel()
        self.dispatch(RemoveMedia(media_id))

    def reorder_media(self, media):
        self.dispatch(ReorderMedia(tuple(media)))

    def update_media(self, media_id, **updates):
        self.dispatch(UpdateMedia(media_id, updates))

    def update_media_caption(self, media_id, caption):
        self.dispatch(UpdateMediaCaption(media_id, caption))

    def _progress(self, media_id):
        return lambda percent: self.update_media(media_id, upload_progress=percent)

    def upload_media(self, item):
        """
        Upload one queued item. Returns its public URL, or None on failure
        (the error is stored on the item as ``upload_error``).
        """
        if item.file is None and item.edited_file is None:
            return None

        try:
            if item.type == 'image':
                url, image = upload_image(item, self.user.pk, self._progress(item.id), storage=self.storage)
                self.update_media(item.id, url=url, width=image.width, height=image.height,
                                  upload_progress=100, upload_error=None)
                return url

            if item.type == 'video':
                return self._upload_video(item)
        except (ComposerError, OSError, Image.DecompressionBombError):
            logger.exception(f"Upload failed for media {item.id}")
            self.update_media(item.id, upload_error='Opplasting feilet')
            return None

        return None

    def _upload_video(self, item):
        title = f"Video - {int(time.time() * 1000)}"
        descriptor = upload_video(item, self.video_client, title, self._progress(item.id))
        self.update_media(
            item.id,
            url=descriptor['playbackUrl'],
            thumbnail_url=descriptor['thumbnailUrl'],
            bunny_video_id=descriptor['videoId'],
            bunny_library_id=descriptor['libraryId'],
            hls_url=descriptor['hlsUrl'],
            upload_progress=100,
            upload_error=None,
        )
        self.update_media(item.id, upload_progress=None, is_processing=True)

        if self.poll_video:
            self._start_video_poller(item.id, descriptor['videoId'])
        return descriptor['playbackUrl']

    def _start_video_poller(self, media_id, video_id):
        def on_done(ready, status):
            self._pollers.pop(media_id, None)
            self.update_media(media_id, is_processing=False)
            if ready:
                mark_video_ready(video_id, status)

        poller = VideoStatusPoller(
            self.video_client,
            video_id,
            on_done=on_done,
            interval=self.config['VIDEO_POLL_INTERVAL'],
            timeout=self.config['VIDEO_POLL_TIMEOUT'],
        )
        self._pollers[media_id] = poller
        poller.start()
        return poller

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def submit(self):
        return submit_post(self)

    def reset(self):
        if self._autosaver:
            self._autosaver.cancel()
        with self._lock:
            self.state = reduce(self.state, Reset())
            if self.default_geography is not None:
                self.state = reduce(self.state, SetGeography(self.default_geography))
            if self.default_group_id is not None:
                self.state = reduce(self.state, SetContext(group_id=self.default_group_id))
            default = self._categories.get(DEFAULT_CATEGORY_SLUG)
            if default:
                self.state = reduce(self.state, SetCategory(default))
            self.state = reduce(self.state, SetError(None))
            # Restoring defaults is not an edit
            self.state = replace(self.state, is_dirty=False)

    def clear_draft(self):
        draft_id = self.state.draft_id
        if draft_id:
            try:
                drafts.delete_draft(self.user, draft_id)
            except DatabaseError:
                logger.exception(f"Failed to delete draft {draft_id}")
        self.reset()

    def load_draft(self, draft):
        """Load a PostDraft row, or a draft id owned by this user."""
        if not isinstance(draft, PostDraft):
            draft = PostDraft.objects.get(id=draft, user=self.user)
        self.dispatch(drafts.load_draft(draft))

    def save_draft(self):
        """Persist the current state now. Returns the draft id or None."""
        autosaver = self._autosaver or drafts.DraftAutosaver(self)
        return autosaver.flush()

    def close(self):
        """Cancel the pending autosave and any video status polling."""
        if self._autosaver:
            self._autosaver.cancel()
        for poller in list(self._pollers.values()):
            poller.cancel()
        self._pollers.clear()


def mark_video_ready(video_id, status=None):
    """Flag stored PostVideo rows for a finished Bunny video as ready."""
    updates = {'status': 'ready'}
    if status:
        if status.get('length'):
            updates['duration'] = status['length']
        if status.get('width'):
            updates['width'] = status['width']
        if status.get('height'):
            updates['height'] = status['height']
    try:
        return PostVideo.objects.filter(bunny_video_id=video_id).update(**updates)
    except DatabaseError:
        logger.exception(f"Failed to mark video {video_id} as ready")
        return 0
