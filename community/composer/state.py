"""
Composer state and reducer.

The composer is a single immutable ``ComposerState`` record mutated only
through ``reduce(state, action)``. Every action is a small frozen dataclass;
unknown actions leave the state untouched.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from typing import Any, Optional, Tuple

from django.utils.dateparse import parse_date, parse_time

# Hashtags keep Nordic and Sámi letters ("#Sámegiella", "#Tromsø")
HASHTAG_PATTERN = re.compile(r"#\w+")
URL_PATTERN = re.compile(r"""https?://[^\s<]+[^<.,:;"')\]\s]""", re.IGNORECASE)

SUPPORTED_IMAGE_FORMATS = (
    'image/jpeg',
    'image/jpg',
    'image/png',
    'image/gif',
    'image/webp',
    'image/heic',
    'image/heif',
)
SUPPORTED_VIDEO_FORMATS = (
    'video/mp4',
    'video/quicktime',
    'video/webm',
    'video/x-m4v',
)

MIN_POLL_OPTIONS = 2


# ============================================================================
# VALUE TYPES
# ============================================================================

@dataclass(frozen=True)
class GeographySelection:
    type: str  # 'language_area' | 'municipality' | 'place'
    id: int
    name: str = ''


@dataclass(frozen=True)
class MentionData:
    id: int
    name: str
    type: str = 'user'  # 'user' | 'group'


@dataclass(frozen=True)
class PollOption:
    id: str
    text: str
    sort_order: int = 0


@dataclass(frozen=True)
class PollData:
    question: str
    options: Tuple[PollOption, ...] = ()
    expires_at: Optional[datetime] = None
    allow_multiple: bool = False


@dataclass(frozen=True)
class LinkPreviewData:
    url: str
    title: str = ''
    description: str = ''
    image: str = ''
    site_name: str = ''
    loading: bool = False
    error: str = ''


@dataclass(frozen=True)
class MediaItem:
    """
    One queued or uploaded attachment.

    ``file`` is the pending upload (a Django ``UploadedFile``); ``url`` is set
    once the item is hosted. ``upload_progress`` is None until an upload starts.
    """

    id: str
    type: str  # 'image' | 'video' | 'gif'
    sort_order: int = 0
    file: Any = None
    edited_file: Any = None
    content_type: str = ''
    size: int = 0
    url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    upload_progress: Optional[int] = None
    upload_error: Optional[str] = None
    is_processing: bool = False
    bunny_video_id: Optional[str] = None
    bunny_library_id: Optional[str] = None
    hls_url: Optional[str] = None
    caption: str = ''
    title: str = ''
    alt_text: str = ''

    @property
    def is_uploading(self):
        return self.upload_progress is not None and 0 < self.upload_progress < 100


@dataclass(frozen=True)
class DraftSnapshot:
    """Draft row flattened into the shape the reducer loads."""

    id: int
    title: str = ''
    content: str = ''
    post_type: str = 'standard'
    visibility: str = 'public'
    category_id: Optional[int] = None
    event_date: str = ''
    event_time: str = ''
    event_end_time: str = ''
    event_location: str = ''
    geography: Optional[GeographySelection] = None
    group_id: Optional[int] = None
    media: Tuple[MediaItem, ...] = ()
    selected_circles: Tuple[int, ...] = ()
    last_saved_at: Optional[datetime] = None


@dataclass(frozen=True)
class ComposerState:
    # Basic fields
    title: str = ''
    content: str = ''
    post_type: str = 'standard'
    visibility: str = 'public'
    selected_circles: Tuple[int, ...] = ()
    category_id: Optional[int] = None

    # Event fields, kept as the raw form strings
    event_date: str = ''
    event_time: str = ''
    event_end_time: str = ''
    event_location: str = ''

    media: Tuple[MediaItem, ...] = ()
    mentions: Tuple[MentionData, ...] = ()
    hashtags: Tuple[str, ...] = ()
    geography: Optional[GeographySelection] = None
    poll: Optional[PollData] = None
    link_preview: Optional[LinkPreviewData] = None
    scheduled_for: Optional[datetime] = None
    group_id: Optional[int] = None

    # Meta
    is_dirty: bool = False
    is_submitting: bool = False
    is_saving_draft: bool = False
    error: Optional[str] = None
    draft_id: Optional[int] = None
    last_saved_at: Optional[datetime] = None


# ============================================================================
# ACTIONS
# ============================================================================

@dataclass(frozen=True)
class SetTitle:
    title: str


@dataclass(frozen=True)
class SetContent:
    content: str
    mentions: Tuple[MentionData, ...] = ()
    hashtags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SetPostType:
    post_type: str


@dataclass(frozen=True)
class SetVisibility:
    visibility: str
    circles: Tuple[int, ...] = ()


@dataclass(frozen=True)
class SetCategory:
    category_id: Optional[int]


@dataclass(frozen=True)
class SetEventDetails:
    """Partial update: fields left as None keep their current value."""

    date: Optional[str] = None
    time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class AddMedia:
    item: MediaItem


@dataclass(frozen=True)
class RemoveMedia:
    media_id: str


@dataclass(frozen=True)
class UpdateMedia:
    media_id: str
    updates: dict = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateMediaCaption:
    media_id: str
    caption: str


@dataclass(frozen=True)
class ReorderMedia:
    media: Tuple[MediaItem, ...]


@dataclass(frozen=True)
class SetGeography:
    geography: Optional[GeographySelection]


@dataclass(frozen=True)
class SetPoll:
    poll: Optional[PollData]


@dataclass(frozen=True)
class SetLinkPreview:
    preview: Optional[LinkPreviewData]


@dataclass(frozen=True)
class SetScheduled:
    scheduled_for: Optional[datetime]


@dataclass(frozen=True)
class SetContext:
    group_id: Optional[int] = None


@dataclass(frozen=True)
class SetError:
    error: Optional[str]


@dataclass(frozen=True)
class SetSubmitting:
    value: bool


@dataclass(frozen=True)
class SetSavingDraft:
    value: bool


@dataclass(frozen=True)
class SetDraftSaved:
    draft_id: int
    saved_at: datetime


@dataclass(frozen=True)
class LoadDraft:
    draft: DraftSnapshot


@dataclass(frozen=True)
class Reset:
    pass


# Actions that represent a user edit and should trigger an autosave
DIRTYING_ACTIONS = (
    SetTitle, SetContent, SetPostType, SetVisibility, SetCategory,
    SetEventDetails, AddMedia, RemoveMedia, UpdateMediaCaption, ReorderMedia,
    SetGeography, SetPoll, SetScheduled,
)


# ============================================================================
# REDUCER
# ============================================================================

def _map_media(state, media_id, **changes):
    return tuple(
        replace(item, **changes) if item.id == media_id else item
        for item in state.media
    )


def reduce(state: ComposerState, action) -> ComposerState:
    if isinstance(action, SetTitle):
        return replace(state, title=action.title, is_dirty=True)

    if isinstance(action, SetContent):
        return replace(
            state,
            content=action.content,
            mentions=tuple(action.mentions),
            hashtags=tuple(action.hashtags),
            is_dirty=True,
        )

    if isinstance(action, SetPostType):
        return replace(state, post_type=action.post_type, is_dirty=True)

    if isinstance(action, SetVisibility):
        return replace(
            state,
            visibility=action.visibility,
            selected_circles=tuple(action.circles),
            is_dirty=True,
        )

    if isinstance(action, SetCategory):
        return replace(state, category_id=action.category_id, is_dirty=True)

    if isinstance(action, SetEventDetails):
        return replace(
            state,
            event_date=state.event_date if action.date is None else action.date,
            event_time=state.event_time if action.time is None else action.time,
            event_end_time=state.event_end_time if action.end_time is None else action.end_time,
            event_location=state.event_location if action.location is None else action.location,
            is_dirty=True,
        )

    if isinstance(action, AddMedia):
        return replace(state, media=state.media + (action.item,), is_dirty=True)

    if isinstance(action, RemoveMedia):
        media = tuple(item for item in state.media if item.id != action.media_id)
        return replace(state, media=media, is_dirty=True)

    if isinstance(action, UpdateMedia):
        return replace(state, media=_map_media(state, action.media_id, **action.updates))

    if isinstance(action, UpdateMediaCaption):
        media = _map_media(state, action.media_id, caption=action.caption)
        return replace(state, media=media, is_dirty=True)

    if isinstance(action, ReorderMedia):
        return replace(state, media=tuple(action.media), is_dirty=True)

    if isinstance(action, SetGeography):
        return replace(state, geography=action.geography, is_dirty=True)

    if isinstance(action, SetPoll):
        return replace(state, poll=action.poll, is_dirty=True)

    if isinstance(action, SetLinkPreview):
        return replace(state, link_preview=action.preview)

    if isinstance(action, SetScheduled):
        return replace(state, scheduled_for=action.scheduled_for, is_dirty=True)

    if isinstance(action, SetContext):
        return replace(
            state,
            group_id=state.group_id if action.group_id is None else action.group_id,
        )

    if isinstance(action, SetError):
        return replace(state, error=action.error)

    if isinstance(action, SetSubmitting):
        return replace(state, is_submitting=action.value)

    if isinstance(action, SetSavingDraft):
        return replace(state, is_saving_draft=action.value)

    if isinstance(action, SetDraftSaved):
        return replace(
            state,
            draft_id=action.draft_id,
            last_saved_at=action.saved_at,
            is_dirty=False,
            is_saving_draft=False,
        )

    if isinstance(action, LoadDraft):
        draft = action.draft
        return replace(
            state,
            title=draft.title or '',
            content=draft.content or '',
            post_type=draft.post_type,
            visibility=draft.visibility,
            selected_circles=tuple(draft.selected_circles),
            category_id=draft.category_id,
            event_date=draft.event_date or '',
            event_time=draft.event_time or '',
            event_end_time=draft.event_end_time or '',
            event_location=draft.event_location or '',
            geography=draft.geography,
            media=tuple(draft.media),
            group_id=draft.group_id,
            hashtags=tuple(extract_hashtags(draft.content or '')),
            draft_id=draft.id,
            last_saved_at=draft.last_saved_at,
            is_dirty=False,
            is_saving_draft=False,
        )

    if isinstance(action, Reset):
        return ComposerState()

    return state


# ============================================================================
# CONTENT HELPERS
# ============================================================================

def extract_hashtags(content: str) -> list:
    """Unique lower-case hashtags without '#', in order of appearance."""
    seen = []
    for match in HASHTAG_PATTERN.findall(content or ''):
        tag = match[1:].lower()
        if tag not in seen:
            seen.append(tag)
    return seen


def extract_first_url(content: str) -> Optional[str]:
    match = URL_PATTERN.search(content or '')
    return match.group(0) if match else None


def process_mentions(content: str, mentions) -> str:
    """
    Rewrite ``@Name`` into the stored ``@[Name](type:id)`` form.

    Names are matched longest first, so ``@Ola Nordmann`` is not claimed by a
    separate ``@Ola`` mention.
    """
    stored = {}
    for mention in mentions:
        if mention.name:
            stored.setdefault(mention.name, f"@[{mention.name}]({mention.type}:{mention.id})")
    if not stored:
        return content
    names = sorted(stored, key=len, reverse=True)
    pattern = re.compile(r"@(" + "|".join(re.escape(name) for name in names) + r")(?!\w)")
    return pattern.sub(lambda match: stored[match.group(1)], content)


def to_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return parse_date(str(value))
    except ValueError:
        return None


def to_time(value) -> Optional[time]:
    if not value:
        return None
    if isinstance(value, time):
        return value
    try:
        return parse_time(str(value))
    except ValueError:
        return None


# ============================================================================
# VALIDATION
# ============================================================================

def is_valid(state: ComposerState) -> bool:
    if not state.title.strip() or not state.content.strip():
        return False
    if state.is_submitting:
        return False
    if state.post_type == 'event':
        return bool(state.event_date and state.event_time and state.event_location)
    return True


def can_submit(state: ComposerState) -> bool:
    """Valid, and no media currently mid-upload (queued media is fine)."""
    return is_valid(state) and not any(item.is_uploading for item in state.media)
