import hashlib
import json
import logging
import re
from itertools import zip_longest

import requests
from django.conf import settings
from django.contrib.auth.decorators import login_required
from django.core.cache import cache
from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.cache import patch_cache_control
from django.utils.dateparse import parse_datetime
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .composer import GeographySelection, MentionData, PollData, PollOption, PostComposer, mark_video_ready
from .composer.drafts import list_drafts, serialize_draft
from .composer.state import extract_hashtags
from .exceptions import VideoServiceError
from .link_preview import LinkPreviewError, fetch_link_preview
from .models import (
    GEOGRAPHY_TYPES,
    POST_TYPE_CHOICES,
    REACTION_TYPES,
    VISIBILITY_CHOICES,
    BugReport,
    Category,
    Circle,
    Comment,
    Country,
    FeatureRequest,
    Feedback,
    Group,
    GroupMember,
    Hashtag,
    LanguageArea,
    Municipality,
    Notification,
    Place,
    PollVote,
    Post,
    PostDraft,
    Reaction,
    Report,
    StarredLocation,
    User,
)
from .templatetags.post_text import render_post_content
from .video import BunnyStreamClient

# Logger
logger = logging.getLogger(__name__)

POSTS_PER_PAGE = 10
POST_TYPES = [value for value, _ in POST_TYPE_CHOICES]
VISIBILITIES = [value for value, _ in VISIBILITY_CHOICES]
GROUP_ROLES = [value for value, _ in GroupMember.ROLE_CHOICES]

TENOR_CACHE_TTL = 300
LINK_PREVIEW_CACHE_TTL = 3600


class InvalidPayload(Exception):
    pass


def _json_body(request):
    try:
        data = json.loads(request.body or b'{}')
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _int_or_none(value):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPayload(f"Ugyldig verdi: {value}")


# ============================================================================
# SERIALIZERS
# ============================================================================

def serialize_user(user):
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "avatar": user.avatar.url if user.avatar else None,
        "is_online": user.is_online,
    }


def serialize_poll(poll, viewer):
    options = poll.options.annotate(vote_count=Count('votes'))
    user_votes = []
    if viewer.is_authenticated:
        user_votes = list(
            PollVote.objects.filter(option__poll=poll, user=viewer).values_list('option_id', flat=True)
        )
    return {
        "id": poll.id,
        "question": poll.question,
        "allow_multiple": poll.allow_multiple,
        "ends_at": poll.ends_at.isoformat() if poll.ends_at else None,
        "is_closed": poll.is_closed,
        "options": [
            {"id": option.id, "text": option.text, "votes": option.vote_count}
            for option in options
        ],
        "user_votes": user_votes,
    }


def serialize_post(post, viewer):
    video = getattr(post, 'video', None)
    poll = getattr(post, 'poll', None)

    user_reaction = None
    if viewer.is_authenticated:
        user_reaction = post.reactions.filter(user=viewer).values_list('reaction_type', flat=True).first()

    return {
        "id": post.id,
        "user": serialize_user(post.user),
        "title": post.title,
        "content": post.content,
        "content_html": render_post_content(post.content),
        "post_type": post.post_type,
        "visibility": post.visibility,
        "image_url": post.image_url or None,
        "category": {"id": post.category.id, "slug": post.category.slug, "name": post.category.name}
        if post.category else None,
        "event": {
            "date": post.event_date.isoformat() if post.event_date else None,
            "time": post.event_time.strftime('%H:%M') if post.event_time else None,
            "end_time": post.event_end_time.strftime('%H:%M') if post.event_end_time else None,
            "location": post.event_location,
            "is_digital": post.is_digital,
        } if post.post_type == 'event' else None,
        "language_area_id": post.language_area_id,
        "municipality_id": post.municipality_id,
        "place_id": post.place_id,
        "group_id": post.group_id,
        "hashtags": [tag.name for tag in post.hashtags.all()],
        "images": [
            {
                "url": image.url,
                "thumbnail_url": image.thumbnail_url or None,
                "width": image.width,
                "height": image.height,
                "caption": image.caption,
                "alt_text": image.alt_text,
            }
            for image in post.images.all()
        ],
        "video": {
            "bunny_video_id": video.bunny_video_id,
            "playback_url": video.playback_url,
            "thumbnail_url": video.thumbnail_url,
            "hls_url": video.hls_url,
            "status": video.status,
        } if video else None,
        "poll": serialize_poll(poll, viewer) if poll else None,
        "reactions": post.reaction_counts(),
        "user_reaction": user_reaction,
        "comment_count": post.comments.count(),
        "is_pinned": post.is_pinned,
        "scheduled_for": post.scheduled_for.isoformat() if post.scheduled_for else None,
        "created_at": post.created_at.isoformat(),
    }


def serialize_comment(comment):
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "parent_id": comment.parent_id,
        "user": serialize_user(comment.user),
        "content": comment.content,
        "content_html": render_post_content(comment.content),
        "media_url": comment.media_url or None,
        "media_type": comment.media_type or None,
        "created_at": comment.created_at.isoformat(),
        "updated_at": comment.updated_at.isoformat(),
    }


def serialize_group(group, viewer):
    membership = group.membership_for(viewer)
    return {
        "id": group.id,
        "name": group.name,
        "slug": group.slug,
        "description": group.description,
        "image_url": group.image_url or None,
        "group_type": group.group_type,
        "municipality_id": group.municipality_id,
        "place_id": group.place_id,
        "member_count": group.member_count,
        "membership": {"role": membership.role, "status": membership.status} if membership else None,
    }


def serialize_member(member):
    return {
        "user": serialize_user(member.user),
        "role": member.role,
        "status": member.status,
        "joined_at": member.joined_at.isoformat(),
        "approved_at": member.approved_at.isoformat() if member.approved_at else None,
    }


def serialize_notification(notification):
    return {
        "id": notification.id,
        "actor": serialize_user(notification.actor),
        "verb": notification.verb,
        "post_id": notification.post_id,
        "comment_id": notification.comment_id,
        "group_id": notification.group_id,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat(),
    }


# ============================================================================
# COMPOSER
# ============================================================================

def _apply_composer_payload(composer, data, files):
    """
    Feed a JSON composer payload (and uploaded files) through the composer
    setters. Returns an error message or None.
    """
    if data.get('draft_id'):
        composer.load_draft(_int_or_none(data['draft_id']))

    if 'title' in data:
        composer.set_title(str(data['title'] or ''))

    if 'content' in data:
        mentions = [
            MentionData(id=int(m['id']), name=str(m['name']), type=m.get('type') or 'user')
            for m in data.get('mentions') or []
        ]
        composer.set_content(str(data['content'] or ''), mentions)

    if 'post_type' in data:
        if data['post_type'] not in POST_TYPES:
            return 'Ugyldig innleggstype'
        composer.set_post_type(data['post_type'])

    if 'visibility' in data:
        if data['visibility'] not in VISIBILITIES:
            return 'Ugyldig synlighet'
        circles = [int(circle_id) for circle_id in data.get('circles') or []]
        composer.set_visibility(data['visibility'], circles)

    if 'category_id' in data:
        composer.set_category(_int_or_none(data['category_id']))

    event = data.get('event')
    if isinstance(event, dict):
        composer.set_event_details(
            date=event.get('date'),
            time=event.get('time'),
            end_time=event.get('end_time'),
            location=event.get('location'),
        )

    if 'geography' in data:
        geography = data['geography']
        if geography:
            if geography.get('type') not in GEOGRAPHY_TYPES:
                return 'Ugyldig geografi'
            composer.set_geography(GeographySelection(
                type=geography['type'],
                id=int(geography['id']),
                name=geography.get('name') or '',
            ))
        else:
            composer.set_geography(None)

    if data.get('group_id'):
        composer.set_context(group_id=_int_or_none(data['group_id']))

    poll = data.get('poll')
    if poll:
        expires_at = parse_datetime(poll['expires_at']) if poll.get('expires_at') else None
        composer.set_poll(PollData(
            question=str(poll.get('question') or ''),
            options=tuple(
                PollOption(id=str(index), text=str(text), sort_order=index)
                for index, text in enumerate(poll.get('options') or [])
            ),
            expires_at=expires_at,
            allow_multiple=bool(poll.get('allow_multiple')),
        ))

    if data.get('scheduled_for'):
        scheduled_for = parse_datetime(data['scheduled_for'])
        if scheduled_for is None:
            return 'Ugyldig tidspunkt for planlegging'
        if timezone.is_naive(scheduled_for):
            scheduled_for = timezone.make_aware(scheduled_for)
        composer.set_scheduled_for(scheduled_for)

    for upload, meta in zip_longest(files, data.get('media_meta') or []):
        if upload is None:
            break
        media_id = composer.add_media(upload)
        if media_id is None:
            return composer.state.error
        if meta:
            composer.update_media(
                media_id,
                caption=meta.get('caption') or '',
                title=meta.get('title') or '',
                alt_text=meta.get('alt_text') or '',
            )

    for gif in data.get('gifs') or []:
        composer.add_gif(gif['url'], gif.get('preview') or '', gif.get('width'), gif.get('height'))

    return None


def _composer_payload(request):
    if request.content_type == 'multipart/form-data':
        try:
            data = json.loads(request.POST.get('state') or '{}')
        except json.JSONDecodeError:
            return None, []
        return (data if isinstance(data, dict) else None), request.FILES.getlist('media')
    return _json_body(request), []


def _build_composer(request):
    """Returns (composer, error_response)."""
    data, files = _composer_payload(request)
    if data is None:
        return None, JsonResponse({"error": "Ugyldig forespørsel"}, status=400)

    composer = PostComposer(request.user, poll_video=False)
    try:
        error = _apply_composer_payload(composer, data, files)
    except PostDraft.DoesNotExist:
        composer.close()
        return None, JsonResponse({"error": "Utkastet finnes ikke"}, status=404)
    except (InvalidPayload, KeyError, TypeError, ValueError, AttributeError) as e:
        logger.info(f"Rejected composer payload from user {request.user.pk}: {e}")
        composer.close()
        return None, JsonResponse({"error": "Ugyldig forespørsel"}, status=400)

    if error:
        composer.close()
        return None, JsonResponse({"error": error}, status=400)
    return composer, None


def _create_post(request):
    composer, error_response = _build_composer(request)
    if error_response:
        return error_response

    try:
        post_id = composer.submit()
        if post_id is None:
            media_errors = [
                {"id": item.id, "error": item.upload_error}
                for item in composer.state.media if item.upload_error
            ]
            return JsonResponse(
                {"error": composer.state.error or "Noe gikk galt", "media_errors": media_errors},
                status=400
            )
    finally:
        composer.close()

    post = Post.objects.select_related('user', 'category').get(id=post_id)
    return JsonResponse({"id": post.id, "post": serialize_post(post, request.user)}, status=201)


@login_required
@require_http_methods(["GET", "POST"])
def drafts(request):
    if request.method == "GET":
        rows = list_drafts(request.user)
        return JsonResponse({"drafts": [serialize_draft(draft) for draft in rows]})

    composer, error_response = _build_composer(request)
    if error_response:
        return error_response
    try:
        draft_id = composer.save_draft()
    finally:
        composer.close()

    if draft_id is None:
        return JsonResponse({"error": "Utkastet er tomt eller kunne ikke lagres"}, status=400)
    draft = PostDraft.objects.get(id=draft_id)
    return JsonResponse({"id": draft.id, "draft": serialize_draft(draft)}, status=201)


@login_required
@require_http_methods(["GET", "DELETE"])
def draft_detail(request, draft_id):
    draft = get_object_or_404(PostDraft, id=draft_id, user=request.user)
    if request.method == "DELETE":
        draft.delete()
        return JsonResponse({"message": "Utkast slettet"})
    return JsonResponse(serialize_draft(draft))


# ============================================================================
# VIDEO (BUNNY STREAM)
# ============================================================================

@csrf_exempt
@require_http_methods(["GET", "POST", "PUT"])
def video_upload(request):
    """
    POST: create a video and return its upload/playback URLs
    PUT ?videoId=: proxy the raw video bytes to Bunny Stream
    GET ?videoId=: transcoding status (isReady once status == 4)
    """
    if not request.user.is_authenticated:
        return JsonResponse({"error": "Ikke autorisert"}, status=401)

    client = BunnyStreamClient()
    if not client.configured:
        logger.error("Missing Bunny Stream configuration")
        return JsonResponse({"error": "Videofunksjon er ikke konfigurert"}, status=500)

    if request.method == "POST":
        data = _json_body(request) or {}
        max_size_mb = settings.COMPOSER['MAX_VIDEO_SIZE_MB']
        max_length = settings.COMPOSER['MAX_VIDEO_LENGTH']
        try:
            file_size = float(data.get('fileSize') or 0)
            duration = float(data.get('duration') or 0)
        except (TypeError, ValueError):
            return JsonResponse({"error": "Ugyldig forespørsel"}, status=400)

        if file_size > max_size_mb * 1024 * 1024:
            return JsonResponse({"error": f"Video kan ikke være større enn {max_size_mb}MB"}, status=400)
        if duration > max_length:
            return JsonResponse(
                {"error": f"Video kan ikke være lengre enn {max_length // 60} minutter"}, status=400
            )

        title = data.get('title') or f"Video fra {request.user.email or request.user.username}"
        try:
            return JsonResponse(client.create_video(title))
        except (VideoServiceError, requests.RequestException) as e:
            logger.error(f"Video create error: {e}")
            return JsonResponse({"error": "Kunne ikke opprette video"}, status=500)

    video_id = request.GET.get('videoId')
    if not video_id:
        return JsonResponse({"error": "Video ID mangler"}, status=400)

    if request.method == "PUT":
        try:
            client.upload(video_id, request.body)
        except (VideoServiceError, requests.RequestException) as e:
            logger.error(f"Video upload error: {e}")
            return JsonResponse({"error": "Kunne ikke laste opp video"}, status=500)
        return JsonResponse({"success": True})

    try:
        status = client.get_status(video_id)
    except (VideoServiceError, requests.RequestException) as e:
        logger.warning(f"Video status error: {e}")
        return JsonResponse({"error": "Kunne ikke hente videostatus"}, status=500)

    if status['isReady']:
        mark_video_ready(video_id, status)
    return JsonResponse(status)


# ============================================================================
# LINK PREVIEW & GIF SEARCH
# ============================================================================

@require_GET
def link_preview(request):
    url = (request.GET.get('url') or '').strip()
    cache_key = f"link-preview:{hashlib.sha256(url.encode()).hexdigest()}"

    data = cache.get(cache_key)
    if data is None:
        try:
            data = fetch_link_preview(url)
        except LinkPreviewError as e:
            return JsonResponse({"error": e.message}, status=e.status)
        cache.set(cache_key, data, LINK_PREVIEW_CACHE_TTL)

    response = JsonResponse(data)
    patch_cache_control(response, public=True, max_age=LINK_PREVIEW_CACHE_TTL, s_maxage=LINK_PREVIEW_CACHE_TTL)
    return response


@require_GET
def search_gifs(request):
    """
    GIF picker results from Tenor.

    - type=featured (or no query) returns trending GIFs
    - Returns a small preview URL for the grid plus a medium URL to post
    - Results are cached for five minutes per query/page
    """
    api_key = settings.TENOR_API_KEY
    if not api_key:
        return JsonResponse({"error": "Tenor API key not configured"}, status=500)

    query = (request.GET.get('q') or '').strip()
    search_type = request.GET.get('type') or 'search'
    pos = request.GET.get('pos') or ''
    try:
        limit = max(1, min(int(request.GET.get('limit') or 20), 50))
    except ValueError:
        limit = 20

    featured = search_type == 'featured' or not query
    cache_key = f"tenor:v2:{'featured' if featured else query.lower()}:{limit}:{pos}"
    cached = cache.get(cache_key)
    if cached is not None:
        return JsonResponse(cached)

    params = {
        'key': api_key,
        'client_key': settings.TENOR_CLIENT_KEY,
        'limit': limit,
        'media_filter': 'gif,tinygif,nanogif',
    }
    if not featured:
        params['q'] = query
    if pos:
        params['pos'] = pos

    endpoint = f"{settings.TENOR_API_URL}/{'featured' if featured else 'search'}"
    try:
        response = requests.get(endpoint, params=params, timeout=8)
    except requests.RequestException as e:
        logger.warning(f"Tenor API error: {e}")
        return JsonResponse({"error": "Failed to fetch GIFs"}, status=500)

    if not response.ok:
        logger.warning(f"Tenor API error {response.status_code}: {response.text[:200]}")
        return JsonResponse({"error": "Failed to fetch GIFs"}, status=response.status_code)

    data = response.json()
    gifs = []
    for gif in data.get('results', []):
        formats = gif.get('media_formats') or {}
        full = formats.get('gif') or {}
        medium = formats.get('mediumgif') or full
        preview = formats.get('nanogif') or formats.get('tinygif') or {}
        dims = medium.get('dims') or full.get('dims') or [None, None]
        gifs.append({
            "id": gif.get('id'),
            "title": gif.get('content_description') or gif.get('title') or '',
            "preview": preview.get('url'),
            "url": medium.get('url'),
            "fullUrl": full.get('url'),
            "width": dims[0],
            "height": dims[1],
        })

    payload = {"gifs": gifs, "next": data.get('next')}
    cache.set(cache_key, payload, TENOR_CACHE_TTL)
    return JsonResponse(payload)


# ============================================================================
# POSTS
# ============================================================================

def _feed_queryset(request):
    posts = (
        Post.objects.visible_to(request.user)
        .in_accessible_groups(request.user)
        .select_related('user', 'category')
        .prefetch_related('images', 'hashtags')
    )

    filters = request.GET
    if filters.get('category'):
        posts = posts.filter(category__slug=filters['category'])
    if filters.get('post_type') in POST_TYPES:
        posts = posts.filter(post_type=filters['post_type'])
    if filters.get('hashtag'):
        posts = posts.filter(hashtags__name=filters['hashtag'].lstrip('#').lower())
    for key in ('language_area', 'municipality', 'place', 'group', 'user'):
        value = filters.get(key)
        if value and value.isdigit():
            posts = posts.filter(**{f"{key}_id": int(value)})
    return posts


@require_http_methods(["GET", "POST"])
def posts(request):
    if request.method == "POST":
        if not request.user.is_authenticated:
            return JsonResponse({"error": "Du må være logget inn"}, status=401)
        return _create_post(request)

    paginator = Paginator(_feed_queryset(request), POSTS_PER_PAGE)
    page_obj = paginator.get_page(request.GET.get('page'))
    return JsonResponse({
        "posts": [serialize_post(post, request.user) for post in page_obj],
        "page": page_obj.number,
        "num_pages": paginator.num_pages,
        "has_next": page_obj.has_next(),
    })


@require_http_methods(["GET", "PUT", "DELETE"])
def post_detail(request, post_id):
    if request.method == "GET":
        post = get_object_or_404(
            Post.objects.visible_to(request.user).in_accessible_groups(request.user), id=post_id
        )
        return JsonResponse(serialize_post(post, request.user))

    if not request.user.is_authenticated:
        return JsonResponse({"error": "Du må være logget inn"}, status=401)

    if request.method == "DELETE":
        post = get_object_or_404(Post, id=post_id)
        if post.user_id != request.user.id and not request.user.is_staff:
            return JsonResponse({"error": "Ikke tilgang"}, status=403)
        post.delete()
        logger.info(f"User {request.user.pk} deleted post {post_id}")
        return JsonResponse({"message": "Innlegg slettet"})

    post = get_object_or_404(Post, id=post_id, user=request.user)
    data = _json_body(request)
    if data is None:
        return JsonResponse({"error": "Ugyldig forespørsel"}, status=400)

    title = (data.get('title', post.title) or '').strip()
    content = (data.get('content', post.content) or '').strip()
    if not title:
        return JsonResponse({"error": "Tittel er påkrevd"}, status=400)
    if not content:
        return JsonResponse({"error": "Innhold er påkrevd"}, status=400)

    visibility = data.get('visibility', post.visibility)
    if visibility not in VISIBILITIES:
        return JsonResponse({"error": "Ugyldig synlighet"}, status=400)

    post.title = title
    post.content = content
    post.visibility = visibility
    if 'category_id' in data:
        category_id = data['category_id']
        post.category = get_object_or_404(Category, id=category_id) if category_id else None
    post.save()

    limit = settings.COMPOSER['MAX_HASHTAGS_PER_POST']
    tags = [Hashtag.objects.get_or_create(name=name)[0] for name in extract_hashtags(content)[:limit]]
    post.hashtags.set(tags)

    return JsonResponse({"message": "Innlegg oppdatert", "post": serialize_post(post, request.user)})


@login_required
@require_POST
def pin_post(request, post_id):
    if not request.user.is_staff:
        return JsonResponse({"error": "Ikke tilgang"}, status=403)
    post = get_object_or_404(Post, id=post_id)
    post.is_pinned = not post.is_pinned
    post.save(update_fields=['is_pinned'])
    return JsonResponse({"is_pinned": post.is_pinned})


# ============================================================================
# COMMENTS
# ============================================================================

@require_http_methods(["GET", "POST"])
def comments(request, post_id):
    post = get_object_or_404(
        Post.objects.visible_to(request.user).in_accessible_groups(request.user), id=post_id
    )

    if request.method == "GET":
        qs = post.comments.select_related('user')
        since = request.GET.get('since')
        if since:
            since_dt = parse_datetime(since)
            if since_dt is None:
                return JsonResponse({"error": "Ugyldig tidspunkt"}, status=400)
            qs = qs.filter(created_at__gt=since_dt)
        return JsonResponse({"comments": [serialize_comment(c) for c in qs]})

    if not request.user.is_authenticated:
        return JsonResponse({"error": "Du må være logget inn"}, status=401)

    data = _json_body(request)
    if data is None:
        return JsonResponse({"error": "Ugyldig forespørsel"}, status=400)

    content = (data.get('content') or '').strip()
    media_url = (data.get('media_url') or '').strip()
    media_type = data.get('media_type') or ('gif' if media_url else '')
    if not content and not media_url:
        return JsonResponse({"error": "Kommentaren kan ikke være tom"}, status=400)
    if media_type not in ('', 'image', 'gif'):
        return JsonResponse({"error": "Ugyldig medietype"}, status=400)

    parent = None
    if data.get('parent_id'):
        try:
            parent = Comment.objects.get(id=data['parent_id'], post=post)
        except (Comment.DoesNotExist, ValueError, TypeError):
            return JsonResponse({"error": "Ugyldig overordnet kommentar"}, status=400)
        if parent.depth + 1 >= settings.COMMENT_MAX_DEPTH:
            return JsonResponse({"error": "Maksimalt svarnivå er nådd"}, status=400)

    comment = Comment.objects.create(
        post=post,
        user=request.user,
        content=content,
        parent=parent,
        media_url=media_url,
        media_type=media_type,
    )

    recipients = {post.user_id}
    if parent:
        recipients.add(parent.user_id)
    recipients.discard(request.user.id)
    for user_id in recipients:
        verb = "svarte på kommentaren din" if parent and user_id == parent.user_id else "kommenterte innlegget ditt"
        Notification.objects.create(user_id=user_id, actor=request.user, verb=verb, post=post, comment=comment)

    return JsonResponse(serialize_comment(comment), status=201)


@login_required
@require_http_methods(["PUT", "DELETE"])
def comment_detail(request, comment_id):
    comment = get_object_or_404(Comment.objects.select_related('post'), id=comment_id)

    if request.method == "DELETE":
        allowed = request.user.id in (comment.user_id, comment.post.user_id) or request.user.is_staff
        if not allowed:
            return JsonResponse({"error": "Ikke tilgang"}, status=403)
        comment.delete()
        return JsonResponse({"message": "Kommentar slettet"})

    if comment.user_id != request.user.id:
        return JsonResponse({"error": "Kommentaren finnes ikke eller er ikke din"}, status=404)

    data = _json_body(request)
    content = ((data or {}).get('content') or '').strip()
    if not content:
        return JsonResponse({"error": "Kommentaren kan ikke være tom"}, status=400)
    comment.content = content
    comment.save()
    return JsonResponse(serialize_comment(comment))


# ============================================================================
# REACTIONS & POLLS
# ============================================================================

@login_required
@require_POST
def toggle_reaction(request, post_id):
    post = get_object_or_404(
        Post.objects.visible_to(request.user).in_accessible_groups(request.user), id=post_id
    )
    data = _json_body(request) or {}
    reaction_type = data.get('reaction_type')
    if reaction_type not in REACTION_TYPES:
        return JsonResponse({"error": "Ugyldig reaksjon"}, status=400)

    existing = Reaction.objects.filter(post=post, user=request.user).first()
    if existing and existing.reaction_type == reaction_type:
        existing.delete()
        current = None
    elif existing:
        existing.reaction_type = reaction_type
        existing.save(update_fields=['reaction_type'])
        current = reaction_type
    else:
        try:
            with transaction.atomic():
                Reaction.objects.create(post=post, user=request.user, reaction_type=reaction_type)
        except IntegrityError:
            # Concurrent toggle from another tab; the other write wins
            pass
        current = reaction_type
        if post.user_id != request.user.id:
            Notification.objects.create(
                user=post.user,
                actor=request.user,
                verb="reagerte på innlegget ditt",
                post=post
            )

    counts = post.reaction_counts()
    return JsonResponse({"reaction": current, "counts": counts, "total": sum(counts.values())})


@login_required
@require_POST
def vote_poll(request, post_id):
    post = get_object_or_404(
        Post.objects.visible_to(request.user).in_accessible_groups(request.user), id=post_id
    )
    poll = getattr(post, 'poll', None)
    if poll is None:
        return JsonResponse({"error": "Innlegget har ingen avstemning"}, status=404)
    if poll.is_closed:
        return JsonResponse({"error": "Avstemningen er avsluttet"}, status=400)

    data = _json_body(request) or {}
    option_ids = data.get('option_ids')
    if option_ids is None and data.get('option_id') is not None:
        option_ids = [data['option_id']]
    if not isinstance(option_ids, list) or not option_ids:
        return JsonResponse({"error": "Velg et alternativ"}, status=400)
    if len(option_ids) > 1 and not poll.allow_multiple:
        return JsonResponse({"error": "Kun ett valg er tillatt"}, status=400)

    try:
        option_ids = {_int_or_none(option_id) for option_id in option_ids}
    except InvalidPayload:
        return JsonResponse({"error": "Ugyldig alternativ"}, status=400)

    options = list(poll.options.filter(id__in=option_ids))
    if len(options) != len(option_ids):
        return JsonResponse({"error": "Ugyldig alternativ"}, status=400)

    with transaction.atomic():
        PollVote.objects.filter(option__poll=poll, user=request.user).delete()
        PollVote.objects.bulk_create([PollVote(option=option, user=request.user) for option in options])

    return JsonResponse(serialize_poll(poll, request.user))


# ============================================================================
# GROUPS
# ============================================================================

def generate_slug(name):
    slug = name.lower().replace('æ', 'ae').replace('ø', 'o').replace('å', 'a')
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    return slug.strip('-')


def _unique_group_slug(name):
    base = generate_slug(name) or 'gruppe'
    slug = base
    suffix = 2
    while Group.objects.filter(slug=slug).exists():
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def _visible_groups(user):
    groups = Group.objects.all()
    if not user.is_authenticated:
        return groups.exclude(group_type='hidden')
    member_of = GroupMember.objects.filter(user=user, status='approved').values('group_id')
    return groups.filter(~Q(group_type='hidden') | Q(id__in=member_of))


@require_http_methods(["GET", "POST"])
def groups(request):
    if request.method == "GET":
        qs = _visible_groups(request.user)
        if request.GET.get('municipality', '').isdigit():
            qs = qs.filter(municipality_id=int(request.GET['municipality']))
        if request.GET.get('place', '').isdigit():
            qs = qs.filter(place_id=int(request.GET['place']))
        return JsonResponse({"groups": [serialize_group(g, request.user) for g in qs]})

    if not request.user.is_authenticated:
        return JsonResponse({"error": "Du må være logget inn"}, status=401)

    data = _json_body(request)
    if data is None:
        return JsonResponse({"error": "Ugyldig forespørsel"}, status=400)

    name = (data.get('name') or '').strip()
    if not name:
        return JsonResponse({"error": "Navn er påkrevd"}, status=400)
    group_type = data.get('group_type') or 'open'
    if group_type not in [value for value, _ in Group.GROUP_TYPE_CHOICES]:
        return JsonResponse({"error": "Ugyldig gruppetype"}, status=400)

    try:
        with transaction.atomic():
            group = Group.objects.create(
                name=name,
                slug=_unique_group_slug(name),
                description=(data.get('description') or '').strip(),
                group_type=group_type,
                municipality_id=_int_or_none(data.get('municipality_id')),
                place_id=_int_or_none(data.get('place_id')),
                created_by=request.user,
            )
            GroupMember.objects.create(
                group=group,
                user=request.user,
                role='admin',
                status='approved',
                approved_at=timezone.now(),
            )
    except (InvalidPayload, IntegrityError) as e:
        logger.info(f"Group creation rejected: {e}")
        return JsonResponse({"error": "Kunne ikke opprette gruppen"}, status=400)

    logger.info(f"User {request.user.pk} created group {group.slug}")
    return JsonResponse(serialize_group(group, request.user), status=201)


@require_GET
def group_detail(request, group_id):
    group = get_object_or_404(_visible_groups(request.user), id=group_id)
    return JsonResponse(serialize_group(group, request.user))


@login_required
@require_POST
def join_group(request, group_id):
    group = get_object_or_404(_visible_groups(request.user), id=group_id)

    membership = group.membership_for(request.user)
    if membership:
        return JsonResponse({"status": membership.status})

    status = 'approved' if group.group_type == 'open' else 'pending'
    GroupMember.objects.create(
        group=group,
        user=request.user,
        status=status,
        approved_at=timezone.now() if status == 'approved' else None,
    )

    if status == 'pending':
        admins = group.members.filter(role__in=('admin', 'moderator'), status='approved')
        Notification.objects.bulk_create([
            Notification(user_id=admin.user_id, actor=request.user, verb="ba om å bli med i gruppen", group=group)
            for admin in admins
        ])

    return JsonResponse({"status": status})


@login_required
@require_POST
def leave_group(request, group_id):
    membership = get_object_or_404(GroupMember, group_id=group_id, user=request.user)
    if membership.role == 'admin' and membership.status == 'approved':
        other_admins = GroupMember.objects.filter(
            group_id=group_id, role='admin', status='approved'
        ).exclude(id=membership.id)
        if not other_admins.exists():
            return JsonResponse({"error": "Gruppen må ha minst én administrator"}, status=400)
    membership.delete()
    return JsonResponse({"message": "Du har forlatt gruppen"})


@require_GET
def group_members(request, group_id):
    group = get_object_or_404(_visible_groups(request.user), id=group_id)
    status = request.GET.get('status') or 'approved'
    if status not in ('approved', 'pending', 'all'):
        return JsonResponse({"error": "Ugyldig status"}, status=400)
    if status != 'approved' and not group.can_moderate(request.user):
        return JsonResponse({"error": "Ikke tilgang"}, status=403)

    members = group.members.select_related('user')
    if status != 'all':
        members = members.filter(status=status)
    return JsonResponse({"members": [serialize_member(m) for m in members]})


def _moderated_membership(request, group_id, user_id):
    """Returns (group, membership, error_response) for approve/reject."""
    group = get_object_or_404(Group, id=group_id)
    if not group.can_moderate(request.user):
        return group, None, JsonResponse({"error": "Ikke tilgang"}, status=403)
    membership = get_object_or_404(GroupMember, group=group, user_id=user_id, status='pending')
    return group, membership, None


@login_required
@require_POST
def approve_member(request, group_id, user_id):
    group, membership, error_response = _moderated_membership(request, group_id, user_id)
    if error_response:
        return error_response

    membership.status = 'approved'
    membership.approved_by = request.user
    membership.approved_at = timezone.now()
    membership.save(update_fields=['status', 'approved_by', 'approved_at'])

    Notification.objects.create(
        user_id=user_id, actor=request.user, verb="godkjente deg som medlem", group=group
    )
    return JsonResponse(serialize_member(membership))


@login_required
@require_POST
def reject_member(request, group_id, user_id):
    _group, membership, error_response = _moderated_membership(request, group_id, user_id)
    if error_response:
        return error_response

    membership.status = 'rejected'
    membership.save(update_fields=['status'])
    return JsonResponse(serialize_member(membership))


@login_required
@require_POST
def update_member_role(request, group_id, user_id):
    group = get_object_or_404(Group, id=group_id)
    if not group.is_admin(request.user):
        return JsonResponse({"error": "Ikke tilgang"}, status=403)

    data = _json_body(request) or {}
    role = data.get('role')
    if role not in GROUP_ROLES:
        return JsonResponse({"error": "Ugyldig rolle"}, status=400)

    membership = get_object_or_404(GroupMember, group=group, user_id=user_id, status='approved')
    if membership.role == 'admin' and role != 'admin':
        if not group.members.filter(role='admin', status='approved').exclude(id=membership.id).exists():
            return JsonResponse({"error": "Gruppen må ha minst én administrator"}, status=400)

    membership.role = role
    membership.save(update_fields=['role'])
    return JsonResponse(serialize_member(membership))


# ============================================================================
# GEOGRAPHY
# ============================================================================

@require_GET
def countries(request):
    rows = Country.objects.all()
    return JsonResponse({"countries": [
        {"id": c.id, "name": c.name, "name_sami": c.name_sami, "code": c.code} for c in rows
    ]})


@require_GET
def language_areas(request):
    rows = LanguageArea.objects.prefetch_related('countries')
    return JsonResponse({"language_areas": [
        {
            "id": area.id,
            "name": area.name,
            "name_sami": area.name_sami,
            "code": area.code,
            "countries": [country.code for country in area.countries.all()],
        }
        for area in rows
    ]})


@require_GET
def municipalities(request):
    rows = Municipality.objects.select_related('country', 'language_area')
    if request.GET.get('country'):
        rows = rows.filter(country__code=request.GET['country'].upper())
    if request.GET.get('language_area'):
        rows = rows.filter(language_area__code=request.GET['language_area'])
    return JsonResponse({"municipalities": [
        {
            "id": m.id,
            "name": m.name,
            "name_sami": m.name_sami,
            "slug": m.slug,
            "country": m.country.code,
            "language_area": m.language_area.code if m.language_area else None,
        }
        for m in rows
    ]})


@require_GET
def places(request):
    rows = Place.objects.select_related('municipality')
    if request.GET.get('municipality', '').isdigit():
        rows = rows.filter(municipality_id=int(request.GET['municipality']))
    return JsonResponse({"places": [
        {"id": p.id, "name": p.name, "name_sami": p.name_sami, "slug": p.slug, "municipality_id": p.municipality_id}
        for p in rows
    ]})


@login_required
@require_http_methods(["GET", "POST", "DELETE"])
def starred_locations(request):
    if request.method == "GET":
        rows = StarredLocation.objects.filter(user=request.user).select_related('municipality', 'place')
        return JsonResponse({"starred": [
            {
                "id": s.id,
                "type": 'place' if s.place_id else 'municipality',
                "target_id": s.place_id or s.municipality_id,
                "name": (s.place or s.municipality).name,
            }
            for s in rows
        ]})

    data = _json_body(request) or {}
    target_type = data.get('type')
    if target_type not in ('municipality', 'place'):
        return JsonResponse({"error": "Ugyldig type"}, status=400)
    try:
        target_id = _int_or_none(data.get('id'))
    except InvalidPayload:
        target_id = None
    if target_id is None:
        return JsonResponse({"error": "Ugyldig sted"}, status=400)
    model = Municipality if target_type == 'municipality' else Place
    target = get_object_or_404(model, id=target_id)

    if request.method == "DELETE":
        StarredLocation.objects.filter(user=request.user, **{target_type: target}).delete()
        return JsonResponse({"starred": False})

    StarredLocation.objects.get_or_create(user=request.user, **{target_type: target})
    return JsonResponse({"starred": True}, status=201)


# ============================================================================
# MODERATION INTAKE
# ============================================================================

@login_required
@require_POST
def bug_reports(request):
    data = _json_body(request)
    if data is None:
        return JsonResponse({"error": "Ugyldig forespørsel"}, status=400)

    title = (data.get('title') or '').strip()
    description = (data.get('description') or '').strip()
    if not title or not description:
        return JsonResponse({"error": "Tittel og beskrivelse er påkrevd"}, status=400)
    category = data.get('category') or 'bug'
    if category not in [value for value, _ in BugReport.CATEGORY_CHOICES]:
        return JsonResponse({"error": "Ugyldig kategori"}, status=400)

    report = BugReport.objects.create(
        user=request.user,
        category=category,
        title=title[:200],
        description=description,
        url=(data.get('url') or '')[:500],
        user_agent=(data.get('user_agent') or request.headers.get('user-agent', ''))[:500],
        screen_size=(data.get('screen_size') or '')[:30],
        screenshot_url=(data.get('screenshot_url') or '')[:500],
    )
    logger.info(f"Bug report {report.id} filed by user {request.user.pk}")
    return JsonResponse({"id": report.id, "status": report.status}, status=201)


@login_required
@require_http_methods(["GET", "POST"])
def feature_requests(request):
    if request.method == "GET":
        rows = FeatureRequest.objects.exclude(status__in=FeatureRequest.ARCHIVED_STATUSES)
        return JsonResponse({"feature_requests": [
            {"id": r.id, "title": r.title, "description": r.description, "status": r.status,
             "created_at": r.created_at.isoformat()}
            for r in rows
        ]})

    data = _json_body(request) or {}
    title = (data.get('title') or '').strip()
    if not title:
        return JsonResponse({"error": "Tittel er påkrevd"}, status=400)
    feature = FeatureRequest.objects.create(
        user=request.user,
        title=title[:200],
        description=(data.get('description') or '').strip(),
    )
    return JsonResponse({"id": feature.id, "status": feature.status}, status=201)


@login_required
@require_POST
def feedback(request):
    data = _json_body(request) or {}
    message = (data.get('message') or '').strip()
    if not message:
        return JsonResponse({"error": "Meldingen kan ikke være tom"}, status=400)
    entry = Feedback.objects.create(user=request.user, message=message)
    return JsonResponse({"id": entry.id}, status=201)


@login_required
@require_POST
def submit_report(request):
    data = _json_body(request)
    if data is None:
        return JsonResponse({"error": "Ugyldig forespørsel"}, status=400)

    target_type = data.get('target_type')
    target_id = data.get('target_id')
    reason = data.get('reason')
    if not target_type or not target_id or not reason:
        return JsonResponse({"error": "Mangler påkrevde felt"}, status=400)
    if reason not in [value for value, _ in Report.REASON_CHOICES]:
        return JsonResponse({"error": "Ugyldig årsak"}, status=400)

    try:
        if target_type == 'post':
            target = {'post': Post.objects.get(id=target_id)}
        elif target_type == 'comment':
            target = {'comment': Comment.objects.get(id=target_id)}
        else:
            return JsonResponse({"error": "Ugyldig target_type"}, status=400)
    except (Post.DoesNotExist, Comment.DoesNotExist, ValueError):
        return JsonResponse({"error": "Fant ikke innholdet"}, status=404)

    report = Report.objects.create(
        reporter=request.user,
        reason=reason,
        description=(data.get('description') or '').strip(),
        **target,
    )
    logger.info(f"Report {report.id} filed on {target_type} {target_id}")
    return JsonResponse({"id": report.id, "status": report.status}, status=201)


# ============================================================================
# NOTIFICATIONS & USERS
# ============================================================================

@login_required
@require_GET
def notifications(request):
    rows = request.user.notifications.select_related('actor')[:30]
    unread = request.user.notifications.filter(is_read=False).count()
    return JsonResponse({
        "notifications": [serialize_notification(n) for n in rows],
        "unread_count": unread,
    })


@login_required
@require_POST
def mark_notifications_read(request):
    data = _json_body(request) or {}
    qs = Notification.objects.filter(user=request.user, is_read=False)
    if data.get('ids'):
        qs = qs.filter(id__in=data['ids'])
    updated = qs.update(is_read=True)
    return JsonResponse({"status": "success", "updated": updated})


@require_GET
def user_detail(request, user_id):
    user = get_object_or_404(User, id=user_id, is_active=True)
    data = serialize_user(user)
    data["bio"] = user.bio
    data["home_municipality_id"] = user.home_municipality_id
    data["last_seen"] = user.last_seen.isoformat() if user.last_seen else None
    if request.user.is_authenticated and request.user.id == user.id:
        data["circles"] = [
            {"id": c.id, "name": c.name, "color": c.color} for c in Circle.objects.filter(owner=user)
        ]
    return JsonResponse(data)
