"""
================================================================================
POST SUBMISSION PIPELINE
================================================================================

submit_post(composer) runs the full "Publiser" flow for a PostComposer:

1. Validate (signed in, title, content, event details, event geography)
2. Upload media that has no URL yet
3. Insert the Post row (the only write whose failure is reported)
4. Best-effort secondary writes, each in its own savepoint:
   circles -> mentions + notifications -> hashtags -> poll -> images -> video
5. Delete the draft, reset the composer, call on_success

Secondary write failures are logged and never surfaced to the user.
================================================================================
"""

import logging
from datetime import timedelta

from django.db import DatabaseError, transaction
from django.utils import timezone

from ..exceptions import ComposerError
from ..models import (
    Circle,
    GroupMember,
    Hashtag,
    Notification,
    Poll,
    PollOption,
    Post,
    PostDraft,
    PostImage,
    PostMention,
    PostVideo,
)
from .state import (
    MIN_POLL_OPTIONS,
    SetError,
    SetSubmitting,
    process_mentions,
    to_date,
    to_time,
)

logger = logging.getLogger(__name__)


def is_group_member(user, group_id):
    """True when ``user`` is an approved member of the group."""
    return GroupMember.objects.filter(group_id=group_id, user=user, status='approved').exists()


def validate_for_submit(composer):
    """Return the first validation error message, or None."""
    state = composer.state
    user = composer.user

    if user is None or not user.is_authenticated:
        return 'Du må være logget inn'
    if not state.title.strip():
        return 'Tittel er påkrevd'
    if not state.content.strip():
        return 'Innhold er påkrevd'

    if state.post_type == 'event':
        if not state.event_date or not state.event_time or not state.event_location:
            return 'Arrangement krever dato, tid og sted'
        if state.geography is None or not state.geography.id:
            return 'Arrangement krever geografisk plassering (velg sted eller kommune)'

    if state.group_id is not None and not is_group_member(user, state.group_id):
        return 'Du må være medlem av gruppen for å publisere her'

    if state.scheduled_for is not None:
        max_days = composer.config['MAX_SCHEDULE_DAYS']
        if state.scheduled_for > timezone.now() + timedelta(days=max_days):
            return f'Innlegg kan ikke planlegges mer enn {max_days} dager frem i tid'

    return None


def _best_effort(label, post, write):
    try:
        with transaction.atomic():
            write()
    except (DatabaseError, ValueError, TypeError):
        logger.exception(f"Failed to save {label} for post {post.id}")


# ============================================================================
# PRIMARY WRITE
# ============================================================================

def _create_post(composer, content, media_urls):
    state = composer.state
    is_event = state.post_type == 'event'

    event_date = event_time = event_end_time = None
    if is_event:
        event_date = to_date(state.event_date)
        event_time = to_time(state.event_time)
        event_end_time = to_time(state.event_end_time)
        if event_date is None or event_time is None:
            raise ComposerError('Ugyldig dato eller tid for arrangementet')

    geography = state.geography
    geography_ids = {'language_area_id': None, 'municipality_id': None, 'place_id': None}
    if geography is not None:
        geography_ids[f"{geography.type}_id"] = geography.id

    return Post.objects.create(
        user=composer.user,
        category_id=state.category_id,
        post_type=state.post_type,
        visibility=state.visibility,
        title=state.title,
        content=content,
        image_url=media_urls[0] if media_urls else '',
        event_date=event_date,
        event_time=event_time,
        event_end_time=event_end_time,
        event_location=state.event_location if is_event else '',
        is_digital=False if is_event else None,
        group_id=state.group_id,
        scheduled_for=state.scheduled_for,
        **geography_ids,
    )


# ============================================================================
# SECONDARY WRITES
# ============================================================================

def _save_circles(post, user, circle_ids):
    circles = Circle.objects.filter(id__in=circle_ids, owner=user)
    post.circles.set(circles)


def _save_mentions(post, actor, mentions):
    PostMention.objects.bulk_create(
        [PostMention(post=post, mention_type=m.type, target_id=m.id) for m in mentions],
        ignore_conflicts=True,
    )

    recipients = set()
    for mention in mentions:
        if mention.type == 'user':
            recipients.add(int(mention.id))
        elif mention.type == 'group':
            admins = GroupMember.objects.filter(
                group_id=mention.id, role='admin', status='approved'
            ).values_list('user_id', flat=True)
            recipients.update(admins)
    recipients.discard(actor.pk)

    Notification.objects.bulk_create([
        Notification(user_id=user_id, actor=actor, verb='nevnte deg i et innlegg', post=post)
        for user_id in sorted(recipients)
    ])


def _save_hashtags(post, hashtags, limit):
    tags = [Hashtag.objects.get_or_create(name=name)[0] for name in hashtags[:limit]]
    post.hashtags.add(*tags)


def _save_poll(post, poll, max_options):
    options = [option for option in poll.options if option.text.strip()][:max_options]
    if len(options) < MIN_POLL_OPTIONS:
        return
    created = Poll.objects.create(
        post=post,
        question=poll.question,
        allow_multiple=poll.allow_multiple,
        ends_at=poll.expires_at,
    )
    PollOption.objects.bulk_create([
        PollOption(poll=created, text=option.text.strip(), sort_order=index)
        for index, option in enumerate(options)
    ])


def _save_images(post, images):
    PostImage.objects.bulk_create([
        PostImage(
            post=post,
            url=item.url,
            thumbnail_url=item.thumbnail_url or '',
            width=item.width,
            height=item.height,
            sort_order=index,
            caption=item.caption,
            title=item.title,
            alt_text=item.alt_text,
        )
        for index, item in enumerate(images)
    ])


def _save_video(post, item):
    PostVideo.objects.create(
        post=post,
        bunny_video_id=item.bunny_video_id,
        bunny_library_id=item.bunny_library_id or '',
        thumbnail_url=item.thumbnail_url or '',
        playback_url=item.url or '',
        hls_url=item.hls_url or '',
        duration=item.duration,
        width=item.width,
        height=item.height,
        file_size=item.size or None,
        status='uploaded',
    )


# ============================================================================
# PIPELINE
# ============================================================================

def submit_post(composer):
    """
    Publish the composer's current state. Returns the new post id or None.
    """
    error = validate_for_submit(composer)
    if error:
        composer.dispatch(SetError(error))
        return None

    composer.dispatch(SetSubmitting(True))
    composer.dispatch(SetError(None))
    user = composer.user
    config = composer.config

    try:
        for item in composer.state.media:
            if (item.file is not None or item.edited_file is not None) and not item.url:
                composer.upload_media(item)

        # Re-read: uploads recorded URLs and video ids on the items
        state = composer.state
        uploaded = [item for item in state.media if item.url]
        media_urls = [item.url for item in uploaded]

        content = process_mentions(state.content, state.mentions)
        post = _create_post(composer, content, media_urls)
    except ComposerError as e:
        logger.warning(f"Post submission rejected for user {user.pk}: {e.message}")
        composer.dispatch(SetError(e.message))
        composer.dispatch(SetSubmitting(False))
        return None
    except DatabaseError:
        logger.exception(f"Post submission failed for user {user.pk}")
        composer.dispatch(SetError('Noe gikk galt'))
        composer.dispatch(SetSubmitting(False))
        return None

    logger.info(f"User {user.pk} published post {post.id}")

    if state.visibility == 'circles' and state.selected_circles:
        _best_effort('circle visibility', post,
                     lambda: _save_circles(post, user, state.selected_circles))

    if state.mentions:
        _best_effort('mentions', post, lambda: _save_mentions(post, user, state.mentions))

    if state.hashtags:
        _best_effort('hashtags', post,
                     lambda: _save_hashtags(post, list(state.hashtags), config['MAX_HASHTAGS_PER_POST']))

    if state.poll and len(state.poll.options) >= MIN_POLL_OPTIONS:
        _best_effort('poll', post, lambda: _save_poll(post, state.poll, config['MAX_POLL_OPTIONS']))

    images = [item for item in uploaded if item.type == 'image']
    if images:
        _best_effort('images', post, lambda: _save_images(post, images))

    video = next((item for item in state.media if item.type == 'video' and item.bunny_video_id), None)
    if video:
        _best_effort('video', post, lambda: _save_video(post, video))

    if state.draft_id:
        _best_effort('draft cleanup', post,
                     lambda: PostDraft.objects.filter(id=state.draft_id, user=user).delete())

    composer.reset()
    if composer.on_success:
        composer.on_success(post)
    return post.id
