from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import Group as AuthGroup
from django.urls import reverse
from django.utils import timezone
from django.utils.html import format_html

from .composer.media import clear_media_settings_cache
from .models import (
    AppSetting, BugReport, Category, Circle, Comment, Country, FeatureRequest,
    Feedback, Group, GroupMember, Hashtag, LanguageArea, Municipality,
    Notification, Place, Poll, PollOption, Post, PostDraft, PostImage,
    PostVideo, Reaction, Report, User,
)


def _short(text, length):
    if not text:
        return "(tomt)"
    return text[:length] + '...' if len(text) > length else text


# ==================== USERS ====================

@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'email', 'full_name', 'is_staff', 'is_active', 'last_seen', 'date_joined')
    list_filter = BaseUserAdmin.list_filter + ('home_municipality__country',)
    search_fields = ('username', 'email', 'full_name')
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Profil', {'fields': ('full_name', 'avatar', 'bio', 'timezone', 'home_municipality', 'last_seen')}),
    )
    actions = ['activate_users', 'deactivate_users']

    def activate_users(self, request, queryset):
        updated = queryset.update(is_active=True)
        self.message_user(request, f"{updated} brukere aktivert")
    activate_users.short_description = "Aktiver valgte brukere"

    def deactivate_users(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} brukere deaktivert")
    deactivate_users.short_description = "Deaktiver valgte brukere"


# ==================== GEOGRAPHY ====================

@admin.register(Country)
class CountryAdmin(admin.ModelAdmin):
    list_display = ('name', 'name_sami', 'code', 'sort_order')


@admin.register(LanguageArea)
class LanguageAreaAdmin(admin.ModelAdmin):
    list_display = ('name', 'name_sami', 'code', 'sort_order')
    filter_horizontal = ('countries',)


@admin.register(Municipality)
class MunicipalityAdmin(admin.ModelAdmin):
    list_display = ('name', 'name_sami', 'country', 'language_area', 'population')
    list_filter = ('country', 'language_area')
    search_fields = ('name', 'name_sami')
    prepopulated_fields = {'slug': ('name',)}


@admin.register(Place)
class PlaceAdmin(admin.ModelAdmin):
    list_display = ('name', 'name_sami', 'municipality', 'created_by')
    list_filter = ('municipality__country',)
    search_fields = ('name', 'name_sami', 'municipality__name')
    prepopulated_fields = {'slug': ('name',)}


# ==================== GROUPS & CIRCLES ====================

class GroupMemberInline(admin.TabularInline):
    model = GroupMember
    fk_name = 'group'
    extra = 0
    fields = ('user', 'role', 'status', 'joined_at', 'approved_by', 'approved_at')
    readonly_fields = ('joined_at',)
    raw_id_fields = ('user', 'approved_by')


@admin.register(Group)
class GroupAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'group_type', 'municipality', 'member_count', 'created_at')
    list_filter = ('group_type',)
    search_fields = ('name', 'slug')
    inlines = [GroupMemberInline]

    def member_count(self, obj):
        return obj.member_count
    member_count.short_description = 'Medlemmer'


@admin.register(Circle)
class CircleAdmin(admin.ModelAdmin):
    list_display = ('name', 'owner', 'color', 'position')
    search_fields = ('name', 'owner__username')
    filter_horizontal = ('members',)


# ==================== CONTENT ====================

@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'color', 'sort_order')
    prepopulated_fields = {'slug': ('name',)}


@admin.register(Hashtag)
class HashtagAdmin(admin.ModelAdmin):
    list_display = ('name', 'created_at')
    search_fields = ('name',)


class PostImageInline(admin.TabularInline):
    model = PostImage
    extra = 0


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ('id', 'user_link', 'title', 'post_type', 'visibility', 'is_pinned', 'created_at')
    list_filter = ('post_type', 'visibility', 'is_pinned', 'category')
    search_fields = ('title', 'content', 'user__username')
    raw_id_fields = ('user', 'group', 'municipality', 'place')
    inlines = [PostImageInline]
    actions = ['pin_posts', 'unpin_posts']

    def user_link(self, obj):
        url = reverse("admin:community_user_change", args=[obj.user.id])
        return format_html('<a href="{}">{}</a>', url, obj.user.username)
    user_link.short_description = 'Bruker'
    user_link.admin_order_field = 'user__username'

    def pin_posts(self, request, queryset):
        updated = queryset.update(is_pinned=True)
        self.message_user(request, f"{updated} innlegg festet")
    pin_posts.short_description = "Fest valgte innlegg"

    def unpin_posts(self, request, queryset):
        updated = queryset.update(is_pinned=False)
        self.message_user(request, f"{updated} innlegg løsnet")
    unpin_posts.short_description = "Løsne valgte innlegg"


@admin.register(PostVideo)
class PostVideoAdmin(admin.ModelAdmin):
    list_display = ('id', 'post', 'bunny_video_id', 'status', 'duration')
    list_filter = ('status',)
    search_fields = ('bunny_video_id',)


class PollOptionInline(admin.TabularInline):
    model = PollOption
    extra = 0


@admin.register(Poll)
class PollAdmin(admin.ModelAdmin):
    list_display = ('id', 'post', 'question', 'allow_multiple', 'ends_at')
    inlines = [PollOptionInline]


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'post', 'parent', 'created_at', 'content_short')
    search_fields = ('content', 'user__username', 'post__id')
    raw_id_fields = ('post', 'parent')

    def content_short(self, obj):
        return _short(obj.content, 50)
    content_short.short_description = 'Innhold'


@admin.register(Reaction)
class ReactionAdmin(admin.ModelAdmin):
    list_display = ('id', 'post', 'user', 'reaction_type', 'created_at')
    list_filter = ('reaction_type',)


@admin.register(PostDraft)
class PostDraftAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'title', 'post_type', 'last_saved_at')
    search_fields = ('title', 'user__username')


# ==================== MODERATION ====================

@admin.register(BugReport)
class BugReportAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'category', 'priority', 'status', 'user', 'created_at')
    list_filter = ('status', 'priority', 'category')
    search_fields = ('title', 'description', 'user__username')
    readonly_fields = ('url', 'user_agent', 'screen_size', 'screenshot_link', 'resolved_by', 'resolved_at')
    actions = ['mark_in_progress', 'mark_resolved', 'mark_dismissed']

    def screenshot_link(self, obj):
        if not obj.screenshot_url:
            return "-"
        return format_html('<a href="{}" target="_blank">Skjermbilde</a>', obj.screenshot_url)
    screenshot_link.short_description = 'Skjermbilde'

    def mark_in_progress(self, request, queryset):
        updated = queryset.update(status='in_progress')
        self.message_user(request, f"{updated} rapporter satt under arbeid")
    mark_in_progress.short_description = "Sett under arbeid"

    def mark_resolved(self, request, queryset):
        updated = queryset.update(status='resolved', resolved_by=request.user, resolved_at=timezone.now())
        self.message_user(request, f"{updated} rapporter løst")
    mark_resolved.short_description = "Marker som løst"

    def mark_dismissed(self, request, queryset):
        updated = queryset.update(status='dismissed', resolved_by=request.user, resolved_at=timezone.now())
        self.message_user(request, f"{updated} rapporter avvist")
    mark_dismissed.short_description = "Avvis"


@admin.register(FeatureRequest)
class FeatureRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'status', 'user', 'created_at')
    list_filter = ('status',)
    search_fields = ('title', 'description')
    actions = ['mark_in_progress', 'mark_completed', 'mark_rejected', 'mark_on_hold']

    def _set_status(self, request, queryset, status, label):
        updated = queryset.update(status=status)
        self.message_user(request, f"{updated} ønsker {label}")

    def mark_in_progress(self, request, queryset):
        self._set_status(request, queryset, 'in_progress', "satt under arbeid")
    mark_in_progress.short_description = "Sett under arbeid"

    def mark_completed(self, request, queryset):
        self._set_status(request, queryset, 'completed', "fullført")
    mark_completed.short_description = "Marker som fullført"

    def mark_rejected(self, request, queryset):
        self._set_status(request, queryset, 'rejected', "avvist")
    mark_rejected.short_description = "Avvis"

    def mark_on_hold(self, request, queryset):
        self._set_status(request, queryset, 'on_hold', "satt på vent")
    mark_on_hold.short_description = "Sett på vent"


@admin.register(Feedback)
class FeedbackAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'created_at', 'message_short')
    search_fields = ('message', 'user__username')

    def message_short(self, obj):
        return _short(obj.message, 80)
    message_short.short_description = 'Melding'


@admin.register(Report)
class ReportAdmin(admin.ModelAdmin):
    list_display = ('id', 'reason', 'target', 'reporter', 'status', 'created_at')
    list_filter = ('status', 'reason')
    readonly_fields = ('reviewed_by', 'reviewed_at')
    actions = ['mark_reviewed', 'mark_dismissed', 'delete_reported_content']

    def target(self, obj):
        if obj.post_id:
            return f"Innlegg #{obj.post_id}"
        if obj.comment_id:
            return f"Kommentar #{obj.comment_id}"
        return "-"
    target.short_description = 'Mål'

    def mark_reviewed(self, request, queryset):
        updated = queryset.update(status='reviewed', reviewed_by=request.user, reviewed_at=timezone.now())
        self.message_user(request, f"{updated} rapporter behandlet")
    mark_reviewed.short_description = "Marker som behandlet"

    def mark_dismissed(self, request, queryset):
        updated = queryset.update(status='dismissed', reviewed_by=request.user, reviewed_at=timezone.now())
        self.message_user(request, f"{updated} rapporter avvist")
    mark_dismissed.short_description = "Avvis"

    def delete_reported_content(self, request, queryset):
        deleted = 0
        for report in queryset.select_related('post', 'comment'):
            content = report.comment or report.post
            if content is not None:
                content.delete()
                deleted += 1
        self.message_user(request, f"{deleted} innhold slettet")
    delete_reported_content.short_description = "Slett rapportert innhold"


# ==================== NOTIFICATIONS & SETTINGS ====================

@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'actor', 'verb', 'created_at', 'is_read')
    list_filter = ('is_read', 'created_at')
    search_fields = ('user__username', 'actor__username', 'verb')


@admin.register(AppSetting)
class AppSettingAdmin(admin.ModelAdmin):
    list_display = ('key', 'value', 'updated_at')
    search_fields = ('key',)

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        clear_media_settings_cache()

    def delete_model(self, request, obj):
        super().delete_model(request, obj)
        clear_media_settings_cache()


# Unregister Django's default auth Group; community groups are managed above
admin.site.unregister(AuthGroup)

# Basic admin site configuration
admin.site.site_header = "Samiske administrasjon"
admin.site.site_title = "Samiske admin"
admin.site.index_title = "Oversikt"
