"""
================================================================================
SAMISKE COMMUNITY NETWORK - DATABASE MODELS
================================================================================

@file        models.py
@description Django ORM models defining the community database schema

MODULE PURPOSE
================================================================================
This module defines all database models for the Samiske community platform:
- User model (extended from AbstractUser)
- Geography hierarchy (country, language area, municipality, place)
- Groups with roles and approval status
- Posts (standard and event), media, polls, mentions and hashtags
- Comments with nested replies and emoji reactions
- Composer drafts
- Moderation queues (bug reports, feature requests, feedback, reports)
- Notifications and runtime app settings

DATABASE STRUCTURE
================================================================================
1. User & Authentication
   - User (AbstractUser extension)

2. Geography
   - Country, LanguageArea, Municipality, Place
   - StarredLocation

3. Groups & Circles
   - Group, GroupMember
   - Circle (friend circles used for post visibility)

4. Content
   - Category, Hashtag
   - Post, PostImage, PostVideo, PostMention
   - Poll, PollOption, PollVote
   - Comment, Reaction

5. Drafts
   - PostDraft (serialized composer state)

6. Moderation
   - BugReport, FeatureRequest, Feedback, Report

7. Notifications & Settings
   - Notification, AppSetting

MODEL RELATIONSHIPS
================================================================================
User (1) ──────> (N) Post
User (1) ──────> (N) Comment
User (1) ──────> (N) PostDraft
Post (1) ──────> (N) PostImage
Post (1) ──────> (0..1) PostVideo
Post (1) ──────> (0..1) Poll ──────> (N) PollOption
Post (1) ──────> (N) Reaction   (one per user)
Comment (1) ────> (N) Comment   (nested replies)
Country (1) ────> (N) Municipality ──────> (N) Place
LanguageArea (1) ──> (N) Municipality
Group (N) <─────> (N) User (via GroupMember)

================================================================================
"""

import zoneinfo
from datetime import timedelta

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Q
from django.utils import timezone as dj_timezone

# ============================================================================
# CONSTANTS & CHOICES
# ============================================================================

TIMEZONE_CHOICES = [(tz, tz) for tz in sorted(zoneinfo.available_timezones())]

POST_TYPE_CHOICES = [
    ('standard', 'Standard'),
    ('event', 'Arrangement'),
]

VISIBILITY_CHOICES = [
    ('public', 'Alle'),
    ('members', 'Medlemmer'),
    ('friends', 'Venner'),
    ('circles', 'Utvalgte sirkler'),
    ('only_me', 'Kun meg'),
]

"""
The ten reactions, in picker order (two rows of five).
"""
REACTION_CHOICES = [
    ('elsker', '❤️ Elsker'),
    ('haha', '😂 Haha'),
    ('wow', '😮 Wow'),
    ('trist', '😢 Trist'),
    ('sint', '😡 Sint'),
    ('tommel', '👍 Tommel opp'),
    ('ild', '🔥 Ild'),
    ('feiring', '🎉 Feiring'),
    ('hundre', '💯 Hundre'),
    ('takk', '🙏 Takk'),
]
REACTION_TYPES = [value for value, _ in REACTION_CHOICES]

GEOGRAPHY_TYPES = ('language_area', 'municipality', 'place')


# ============================================================================
# SECTION 1: USER & AUTHENTICATION MODELS
# ============================================================================

class User(AbstractUser):
    """
    Community member.

    Extends Django's AbstractUser with profile and presence fields.
    Platform administrators are users with ``is_staff`` set.

    Attributes:
        full_name (CharField): Display name shown on posts and comments
        avatar (ImageField): Profile picture
        bio (TextField): Profile biography
        timezone (CharField): Preferred timezone for date display
        last_seen (DateTimeField): Last activity timestamp
        home_municipality (ForeignKey): Optional home municipality

    Properties:
        is_online: True if user was active in the last 5 minutes
        display_name: full_name falling back to username
    """

    full_name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Display name"
    )
    avatar = models.ImageField(
        upload_to='avatars/',
        null=True,
        blank=True,
        help_text="Profile picture"
    )
    bio = models.TextField(
        max_length=500,
        blank=True,
        help_text="Profile biography"
    )
    timezone = models.CharField(
        max_length=100,
        choices=TIMEZONE_CHOICES,
        default='Europe/Oslo',
        help_text="Preferred timezone for display"
    )
    last_seen = models.DateTimeField(
        null=True,
        blank=True,
        default=dj_timezone.now,
        help_text="Last activity timestamp for online status"
    )
    home_municipality = models.ForeignKey(
        'Municipality',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='residents',
        help_text="Home municipality"
    )

    @property
    def is_online(self):
        if not self.last_seen:
            return False
        return dj_timezone.now() - self.last_seen < timedelta(minutes=5)

    @property
    def display_name(self):
        return self.full_name or self.username


# ============================================================================
# SECTION 2: GEOGRAPHY MODELS
# ============================================================================

class Country(models.Model):
    name = models.CharField(max_length=100)
    name_sami = models.CharField(max_length=100, blank=True)
    code = models.CharField(max_length=2, unique=True, help_text="'NO', 'SE', 'FI', 'RU'")
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['sort_order', 'name']
        verbose_name_plural = 'countries'

    def __str__(self):
        return self.name


class LanguageArea(models.Model):
    """
    Sámi language area (North, Lule, South, ...).

    The top level of the three-level geography used to scope posts and groups.
    A language area can span several countries.
    """

    name = models.CharField(max_length=100)
    name_sami = models.CharField(max_length=100, blank=True)
    code = models.SlugField(max_length=30, unique=True, help_text="'north', 'south', 'lule', ...")
    description = models.TextField(blank=True)
    sort_order = models.PositiveIntegerField(default=0)
    countries = models.ManyToManyField(Country, blank=True, related_name='language_areas')

    class Meta:
        ordering = ['sort_order', 'name']

    def __str__(self):
        return self.name


class Municipality(models.Model):
    """
    Municipality inside a country, optionally part of a language area.

    Slugs are unique per country so that ``/sapmi/<country>/<slug>`` resolves.
    """

    country = models.ForeignKey(Country, on_delete=models.CASCADE, related_name='municipalities')
    language_area = models.ForeignKey(
        LanguageArea,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='municipalities'
    )
    name = models.CharField(max_length=150)
    name_sami = models.CharField(max_length=150, blank=True)
    slug = models.SlugField(max_length=160)
    population = models.PositiveIntegerField(null=True, blank=True)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'municipalities'
        unique_together = ('country', 'slug')

    def __str__(self):
        return self.name


class Place(models.Model):
    municipality = models.ForeignKey(Municipality, on_delete=models.CASCADE, related_name='places')
    name = models.CharField(max_length=150)
    name_sami = models.CharField(max_length=150, blank=True)
    slug = models.SlugField(max_length=160)
    description = models.TextField(blank=True)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_places'
    )

    class Meta:
        ordering = ['name']
        unique_together = ('municipality', 'slug')

    def __str__(self):
        return f"{self.name} ({self.municipality.name})"


class StarredLocation(models.Model):
    """
    A municipality or place starred by a user.

    Exactly one of ``municipality`` and ``place`` is set.
    """

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='starred_locations')
    municipality = models.ForeignKey(Municipality, on_delete=models.CASCADE, null=True, blank=True)
    place = models.ForeignKey(Place, on_delete=models.CASCADE, null=True, blank=True)
    starred_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-starred_at']
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(municipality__isnull=False, place__isnull=True)
                    | Q(municipality__isnull=True, place__isnull=False)
                ),
                name='starred_location_single_target',
            ),
            models.UniqueConstraint(
                fields=['user', 'municipality'],
                condition=Q(municipality__isnull=False),
                name='unique_starred_municipality',
            ),
            models.UniqueConstraint(
                fields=['user', 'place'],
                condition=Q(place__isnull=False),
                name='unique_starred_place',
            ),
        ]


# ============================================================================
# SECTION 3: GROUPS & CIRCLES
# ============================================================================

class Group(models.Model):
    """
    Geography-scoped interest group.

    Attributes:
        group_type (CharField):
            - 'open': anyone can see and join
            - 'closed': visible, joining requires approval
            - 'hidden': only members know it exists, joining requires approval
        municipality / place: optional geographic anchor
    """

    GROUP_TYPE_CHOICES = [
        ('open', 'Åpen'),
        ('closed', 'Lukket'),
        ('hidden', 'Skjult'),
    ]

    name = models.CharField(max_length=120)
    slug = models.SlugField(max_length=140, unique=True)
    description = models.TextField(blank=True)
    image_url = models.URLField(max_length=500, blank=True)
    group_type = models.CharField(max_length=10, choices=GROUP_TYPE_CHOICES, default='open')
    municipality = models.ForeignKey(
        Municipality, on_delete=models.SET_NULL, null=True, blank=True, related_name='groups'
    )
    place = models.ForeignKey(
        Place, on_delete=models.SET_NULL, null=True, blank=True, related_name='groups'
    )
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_groups'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def membership_for(self, user):
        if not user or not user.is_authenticated:
            return None
        return self.members.filter(user=user).first()

    def is_admin(self, user):
        membership = self.membership_for(user)
        return bool(membership and membership.status == 'approved' and membership.role == 'admin')

    def can_moderate(self, user):
        membership = self.membership_for(user)
        return bool(
            membership
            and membership.status == 'approved'
            and membership.role in ('admin', 'moderator')
        )

    @property
    def member_count(self):
        return self.members.filter(status='approved').count()


class GroupMember(models.Model):
    ROLE_CHOICES = [
        ('member', 'Medlem'),
        ('moderator', 'Moderator'),
        ('admin', 'Administrator'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Venter'),
        ('approved', 'Godkjent'),
        ('rejected', 'Avvist'),
    ]

    group = models.ForeignKey(Group, on_delete=models.CASCADE, related_name='members')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='group_memberships')
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='member')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending')
    joined_at = models.DateTimeField(auto_now_add=True)
    approved_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-joined_at']
        unique_together = ('group', 'user')

    def __str__(self):
        return f"{self.user} in {self.group} ({self.role}, {self.status})"


class Circle(models.Model):
    """
    Friend circle owned by a user.

    Posts with 'circles' visibility are shown to members of the selected
    circles; 'friends' visibility covers members of any of the author's circles.
    """

    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='circles')
    name = models.CharField(max_length=60)
    color = models.CharField(max_length=7, default='#3B82F6')
    members = models.ManyToManyField(User, blank=True, related_name='member_of_circles')
    position = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['position', 'name']

    def __str__(self):
        return f"{self.owner}: {self.name}"


# ============================================================================
# SECTION 4: CONTENT MODELS
# ============================================================================

class Category(models.Model):
    name = models.CharField(max_length=60)
    slug = models.SlugField(max_length=60, unique=True)
    color = models.CharField(max_length=7, default='#6B7280')
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['sort_order', 'name']
        verbose_name_plural = 'categories'

    def __str__(self):
        return self.name


class Hashtag(models.Model):
    name = models.CharField(max_length=100, unique=True, help_text="Lower-case, without '#'")
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"#{self.name}"


class PostQuerySet(models.QuerySet):

    def visible_to(self, user):
        """
        Posts the given user may see.

        - public / members: any signed-in user ('public' also for anonymous)
        - only_me: the author
        - circles: members of one of the post's selected circles
        - friends: members of any circle owned by the author
        Scheduled posts stay hidden from everyone but the author until due.
        """
        now = dj_timezone.now()
        published = Q(scheduled_for__isnull=True) | Q(scheduled_for__lte=now)

        if not user or not user.is_authenticated:
            return self.filter(published, visibility='public')

        rules = (
            Q(visibility__in=('public', 'members'))
            | Q(visibility='circles', circles__members=user)
            | Q(visibility='friends', user__circles__members=user)
        )
        return self.filter(Q(user=user) | (rules & published)).distinct()

    def in_accessible_groups(self, user):
        """Drop posts from closed/hidden groups the user is not an approved member of."""
        open_posts = Q(group__isnull=True) | Q(group__group_type='open')
        if not user or not user.is_authenticated:
            return self.filter(open_posts)

        member_of = GroupMember.objects.filter(user=user, status='approved').values('group_id')
        return self.filter(open_posts | Q(group_id__in=member_of) | Q(user=user))


class Post(models.Model):
    """
    User-generated post, either a standard post or an event.

    Geography is stored as up to one of language_area / municipality / place,
    chosen by the composer's geography selection. Event fields are only filled
    for posts of type 'event'.

    Related Names:
        images: PostImage objects in display order
        video: PostVideo (Bunny Stream) if any
        poll: Poll if any
        comments: Comment objects
        reactions: Reaction objects
        mentions: PostMention objects
    """

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='posts')
    category = models.ForeignKey(
        Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='posts'
    )
    post_type = models.CharField(max_length=10, choices=POST_TYPE_CHOICES, default='standard')
    visibility = models.CharField(max_length=10, choices=VISIBILITY_CHOICES, default='public')
    title = models.CharField(max_length=200)
    content = models.TextField(help_text="Content with mentions stored as @[Name](type:id)")
    image_url = models.URLField(
        max_length=500,
        blank=True,
        help_text="Primary media URL kept for older clients"
    )

    # --- Event fields ---
    event_date = models.DateField(null=True, blank=True)
    event_time = models.TimeField(null=True, blank=True)
    event_end_time = models.TimeField(null=True, blank=True)
    event_location = models.CharField(max_length=255, blank=True)
    is_digital = models.BooleanField(null=True, blank=True)

    # --- Geography & context ---
    language_area = models.ForeignKey(
        LanguageArea, on_delete=models.SET_NULL, null=True, blank=True, related_name='posts'
    )
    municipality = models.ForeignKey(
        Municipality, on_delete=models.SET_NULL, null=True, blank=True, related_name='posts'
    )
    place = models.ForeignKey(
        Place, on_delete=models.SET_NULL, null=True, blank=True, related_name='posts'
    )
    group = models.ForeignKey(
        Group, on_delete=models.CASCADE, null=True, blank=True, related_name='posts'
    )
    circles = models.ManyToManyField(Circle, blank=True, related_name='posts')
    hashtags = models.ManyToManyField(Hashtag, blank=True, related_name='posts')

    scheduled_for = models.DateTimeField(null=True, blank=True)
    is_pinned = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PostQuerySet.as_manager()

    class Meta:
        ordering = ['-is_pinned', '-created_at']
        indexes = [models.Index(fields=['-created_at'])]

    def __str__(self):
        return f"{self.user} - {self.title[:50]}"

    def reaction_counts(self):
        rows = self.reactions.values('reaction_type').annotate(total=models.Count('id'))
        counts = {row['reaction_type']: row['total'] for row in rows}
        return {key: counts[key] for key in REACTION_TYPES if key in counts}


class PostImage(models.Model):
    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name='images')
    url = models.URLField(max_length=500)
    thumbnail_url = models.URLField(max_length=500, blank=True)
    width = models.PositiveIntegerField(null=True, blank=True)
    height = models.PositiveIntegerField(null=True, blank=True)
    sort_order = models.PositiveIntegerField(default=0)
    caption = models.TextField(blank=True)
    title = models.CharField(max_length=200, blank=True)
    alt_text = models.CharField(max_length=300, blank=True)

    class Meta:
        ordering = ['sort_order']


class PostVideo(models.Model):
    """
    Video hosted on Bunny Stream.

    ``status`` starts as 'uploaded' and becomes 'ready' once transcoding
    reports finished.
    """

    STATUS_CHOICES = [
        ('uploaded', 'Lastet opp'),
        ('processing', 'Behandles'),
        ('ready', 'Klar'),
        ('failed', 'Feilet'),
    ]

    post = models.OneToOneField(Post, on_delete=models.CASCADE, related_name='video')
    bunny_video_id = models.CharField(max_length=64)
    bunny_library_id = models.CharField(max_length=32)
    thumbnail_url = models.URLField(max_length=500, blank=True)
    playback_url = models.URLField(max_length=500, blank=True)
    hls_url = models.URLField(max_length=500, blank=True)
    duration = models.FloatField(null=True, blank=True)
    width = models.PositiveIntegerField(null=True, blank=True)
    height = models.PositiveIntegerField(null=True, blank=True)
    file_size = models.BigIntegerField(null=True, blank=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='uploaded')


class PostMention(models.Model):
    MENTION_TYPE_CHOICES = [
        ('user', 'Bruker'),
        ('group', 'Gruppe'),
    ]

    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name='mentions')
    mention_type = models.CharField(max_length=10, choices=MENTION_TYPE_CHOICES)
    target_id = models.PositiveBigIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('post', 'mention_type', 'target_id')


class Poll(models.Model):
    post = models.OneToOneField(Post, on_delete=models.CASCADE, related_name='poll')
    question = models.CharField(max_length=300)
    allow_multiple = models.BooleanField(default=False)
    ends_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def is_closed(self):
        return bool(self.ends_at and self.ends_at <= dj_timezone.now())


class PollOption(models.Model):
    poll = models.ForeignKey(Poll, on_delete=models.CASCADE, related_name='options')
    text = models.CharField(max_length=200)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['sort_order']


class PollVote(models.Model):
    option = models.ForeignKey(PollOption, on_delete=models.CASCADE, related_name='votes')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='poll_votes')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('option', 'user')


class Comment(models.Model):
    """
    Comment on a post with optional nested replies.

    Attributes:
        parent (ForeignKey): Parent comment on the same post (None for root)
        media_url / media_type: optional GIF or image attachment

    Example:
        root = Comment.objects.create(user=user, post=post, content="Flott!")
        Comment.objects.create(user=other, post=post, content="Takk!", parent=root)
    """

    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name='comments')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='comments')
    parent = models.ForeignKey(
        'self',
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name='replies'
    )
    content = models.TextField(blank=True)
    media_url = models.URLField(max_length=500, blank=True)
    media_type = models.CharField(
        max_length=10,
        choices=[('image', 'Image'), ('gif', 'GIF')],
        blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at']

    @property
    def depth(self):
        depth = 0
        current = self
        while current.parent_id:
            depth += 1
            current = current.parent
        return depth


class Reaction(models.Model):
    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name='reactions')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='reactions')
    reaction_type = models.CharField(max_length=10, choices=REACTION_CHOICES)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('post', 'user')


# ============================================================================
# SECTION 5: DRAFTS
# ============================================================================

class PostDraft(models.Model):
    """
    Server-persisted snapshot of in-progress composer state.

    ``media`` only contains items that already have a hosted URL:
    [{"id", "type", "url", "thumbnailUrl", "sortOrder"}, ...]
    """

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='drafts')
    title = models.CharField(max_length=200, blank=True)
    content = models.TextField(blank=True)
    post_type = models.CharField(max_length=10, choices=POST_TYPE_CHOICES, default='standard')
    visibility = models.CharField(max_length=10, choices=VISIBILITY_CHOICES, default='public')
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True)
    event_date = models.DateField(null=True, blank=True)
    event_time = models.TimeField(null=True, blank=True)
    event_end_time = models.TimeField(null=True, blank=True)
    event_location = models.CharField(max_length=255, blank=True)
    language_area = models.ForeignKey(LanguageArea, on_delete=models.SET_NULL, null=True, blank=True)
    municipality = models.ForeignKey(Municipality, on_delete=models.SET_NULL, null=True, blank=True)
    place = models.ForeignKey(Place, on_delete=models.SET_NULL, null=True, blank=True)
    group = models.ForeignKey(Group, on_delete=models.SET_NULL, null=True, blank=True)
    media = models.JSONField(default=list, blank=True)
    selected_circles = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    last_saved_at = models.DateTimeField(default=dj_timezone.now)

    class Meta:
        ordering = ['-last_saved_at']


# ============================================================================
# SECTION 6: MODERATION QUEUES
# ============================================================================

class BugReport(models.Model):
    CATEGORY_CHOICES = [
        ('bug', 'Feil'),
        ('improvement', 'Forbedring'),
        ('question', 'Spørsmål'),
        ('other', 'Annet'),
    ]
    PRIORITY_CHOICES = [
        ('low', 'Lav'),
        ('medium', 'Middels'),
        ('high', 'Høy'),
        ('critical', 'Kritisk'),
    ]
    STATUS_CHOICES = [
        ('new', 'Ny'),
        ('in_progress', 'Under arbeid'),
        ('resolved', 'Løst'),
        ('dismissed', 'Avvist'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='bug_reports')
    category = models.CharField(max_length=12, choices=CATEGORY_CHOICES, default='bug')
    title = models.CharField(max_length=200)
    description = models.TextField()
    url = models.URLField(max_length=500, blank=True)
    user_agent = models.CharField(max_length=500, blank=True)
    screen_size = models.CharField(max_length=30, blank=True)
    screenshot_url = models.URLField(max_length=500, blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='new')
    admin_notes = models.TextField(blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title


class FeatureRequest(models.Model):
    STATUS_CHOICES = [
        ('new', 'Ny'),
        ('in_progress', 'Under arbeid'),
        ('completed', 'Fullført'),
        ('rejected', 'Avvist'),
        ('on_hold', 'På vent'),
    ]
    ARCHIVED_STATUSES = ('completed', 'rejected')

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='feature_requests')
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='new')
    admin_notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title


class Feedback(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='feedback')
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = 'feedback'


class Report(models.Model):
    """
    Content report filed against a post or a comment.
    """

    REASON_CHOICES = [
        ('spam', 'Spam'),
        ('harassment', 'Trakassering'),
        ('hate', 'Hatefullt innhold'),
        ('misinformation', 'Feilinformasjon'),
        ('inappropriate', 'Upassende innhold'),
        ('other', 'Annet'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Venter'),
        ('reviewed', 'Behandlet'),
        ('dismissed', 'Avvist'),
    ]

    reporter = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='reports_filed')
    post = models.ForeignKey(Post, on_delete=models.CASCADE, null=True, blank=True, related_name='reports')
    comment = models.ForeignKey(Comment, on_delete=models.CASCADE, null=True, blank=True, related_name='reports')
    reason = models.CharField(max_length=20, choices=REASON_CHOICES)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending')
    reviewed_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']


# ============================================================================
# SECTION 7: NOTIFICATIONS & SETTINGS
# ============================================================================

class Notification(models.Model):
    """
    Activity notification (reactions, comments, mentions, group events).

    Example:
        Notification.objects.create(
            user=post.user,
            actor=reactor,
            verb="reagerte på innlegget ditt",
            post=post
        )
    """

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    actor = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='+')
    verb = models.CharField(max_length=80)
    post = models.ForeignKey(Post, on_delete=models.CASCADE, null=True, blank=True)
    comment = models.ForeignKey(Comment, on_delete=models.CASCADE, null=True, blank=True)
    group = models.ForeignKey(Group, on_delete=models.CASCADE, null=True, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']


class AppSetting(models.Model):
    """
    Runtime settings edited by administrators (e.g. 'media_max_file_size_mb').
    """

    key = models.CharField(max_length=80, unique=True)
    value = models.JSONField()
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key
