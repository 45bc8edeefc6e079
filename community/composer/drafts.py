"""
Composer drafts: persistence of in-progress composer state in ``PostDraft``
and the debounced autosaver that keeps it current.
"""

import logging
import threading

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, connections
from django.utils import timezone

from ..models import PostDraft
from .state import (
    DraftSnapshot,
    GeographySelection,
    LoadDraft,
    MediaItem,
    SetDraftSaved,
    SetSavingDraft,
    to_date,
    to_time,
)
from .submit import is_group_member

logger = logging.getLogger(__name__)


# ============================================================================
# SERIALIZATION
# ============================================================================

def serialize_media(media):
    """Only items that already have a hosted URL survive into a draft."""
    return [
        {
            'id': item.id,
            'type': item.type,
            'url': item.url,
            'thumbnailUrl': item.thumbnail_url,
            'sortOrder': item.sort_order,
            'caption': item.caption,
            'bunnyVideoId': item.bunny_video_id,
            'bunnyLibraryId': item.bunny_library_id,
            'hlsUrl': item.hls_url,
        }
        for item in media
        if item.url
    ]


def deserialize_media(rows):
    items = []
    for index, row in enumerate(rows or []):
        if not isinstance(row, dict) or not row.get('url'):
            continue
        items.append(MediaItem(
            id=str(row.get('id') or index),
            type=row.get('type') or 'image',
            url=row['url'],
            thumbnail_url=row.get('thumbnailUrl'),
            sort_order=row.get('sortOrder', index),
            caption=row.get('caption') or '',
            bunny_video_id=row.get('bunnyVideoId'),
            bunny_library_id=row.get('bunnyLibraryId'),
            hls_url=row.get('hlsUrl'),
            upload_progress=100,
        ))
    return tuple(items)


def _geography_fields(geography):
    fields = {'language_area_id': None, 'municipality_id': None, 'place_id': None}
    if geography is not None:
        fields[f"{geography.type}_id"] = geography.id
    return fields


def _draft_geography(draft):
    if draft.place_id:
        return GeographySelection('place', draft.place_id)
    if draft.municipality_id:
        return GeographySelection('municipality', draft.municipality_id)
    if draft.language_area_id:
        return GeographySelection('language_area', draft.language_area_id)
    return None


def serialize_draft(draft):
    geography = _draft_geography(draft)
    return {
        'id': draft.id,
        'title': draft.title,
        'content': draft.content,
        'post_type': draft.post_type,
        'visibility': draft.visibility,
        'category_id': draft.category_id,
        'event_date': draft.event_date.isoformat() if draft.event_date else '',
        'event_time': draft.event_time.strftime('%H:%M') if draft.event_time else '',
        'event_end_time': draft.event_end_time.strftime('%H:%M') if draft.event_end_time else '',
        'event_location': draft.event_location,
        'geography': {'type': geography.type, 'id': geography.id} if geography else None,
        'group_id': draft.group_id,
        'media': draft.media,
        'selected_circles': draft.selected_circles,
        'last_saved_at': draft.last_saved_at.isoformat(),
    }


# ============================================================================
# CRUD
# ============================================================================

def save_draft(user, state):
    """
    Insert or update the user's draft for ``state``.

    Updates ``state.draft_id`` when it still belongs to the user, otherwise a
    new row is created. A group context is only kept for approved members.
    Returns the saved PostDraft.
    """
    fields = {
        'title': state.title,
        'content': state.content,
        'post_type': state.post_type,
        'visibility': state.visibility,
        'category_id': state.category_id,
        'event_date': to_date(state.event_date),
        'event_time': to_time(state.event_time),
        'event_end_time': to_time(state.event_end_time),
        'event_location': state.event_location,
        'group_id': state.group_id if state.group_id and is_group_member(user, state.group_id) else None,
        'media': serialize_media(state.media),
        'selected_circles': list(state.selected_circles),
        'last_saved_at': timezone.now(),
        **_geography_fields(state.geography),
    }

    if state.draft_id:
        updated = PostDraft.objects.filter(id=state.draft_id, user=user).update(**fields)
        if updated:
            return PostDraft.objects.get(id=state.draft_id)

    return PostDraft.objects.create(user=user, **fields)


def load_draft(draft):
    """Build the LoadDraft action for a PostDraft row."""
    snapshot = DraftSnapshot(
        id=draft.id,
        title=draft.title,
        content=draft.content,
        post_type=draft.post_type,
        visibility=draft.visibility,
        category_id=draft.category_id,
        event_date=draft.event_date.isoformat() if draft.event_date else '',
        event_time=draft.event_time.strftime('%H:%M') if draft.event_time else '',
        event_end_time=draft.event_end_time.strftime('%H:%M') if draft.event_end_time else '',
        event_location=draft.event_location,
        geography=_draft_geography(draft),
        group_id=draft.group_id,
        media=deserialize_media(draft.media),
        selected_circles=tuple(draft.selected_circles or ()),
        last_saved_at=draft.last_saved_at,
    )
    return LoadDraft(snapshot)


def list_drafts(user, limit=None):
    limit = limit or settings.COMPOSER['MAX_DRAFTS']
    return PostDraft.objects.filter(user=user).order_by('-last_saved_at', '-id')[:limit]


def delete_draft(user, draft_id):
    deleted, _ = PostDraft.objects.filter(id=draft_id, user=user).delete()
    return bool(deleted)


# ============================================================================
# AUTOSAVE
# ============================================================================

class DraftAutosaver:
    """
    Debounced draft persistence for a PostComposer.

    Every ``schedule()`` restarts the countdown, so a draft is written
    ``interval`` seconds after the last edit. ``cancel()`` drops a pending save.
    """

    def __init__(self, composer, interval=None):
        self.composer = composer
        self.interval = settings.COMPOSER['AUTOSAVE_INTERVAL'] if interval is None else interval
        self._timer = None
        self._lock = threading.Lock()

    @property
    def pending(self):
        return self._timer is not None

    def schedule(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.interval, self._run)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _run(self):
        with self._lock:
            self._timer = None
        try:
            if self.composer.state.is_dirty:
                self.flush()
        finally:
            # Timer threads open their own database connection
            connections.close_all()

    def flush(self):
        """Save now. Returns the draft id, or None when nothing was saved."""
        self.cancel()
        state = self.composer.state
        if not (state.title or state.content or state.media):
            return None

        self.composer.dispatch(SetSavingDraft(True))
        try:
            draft = save_draft(self.composer.user, state)
        except (DatabaseError, ValidationError):
            logger.exception(f"Draft autosave failed for user {self.composer.user.pk}")
            self.composer.dispatch(SetSavingDraft(False))
            return None

        self.composer.dispatch(SetDraftSaved(draft.id, draft.last_saved_at))
        logger.debug(f"Saved draft {draft.id} for user {self.composer.user.pk}")
        return draft.id
