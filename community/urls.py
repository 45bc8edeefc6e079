"""
================================================================================
SAMISKE COMMUNITY - URL CONFIGURATION
================================================================================

@file        urls.py
@description JSON API routing for the community app

URL STRUCTURE OVERVIEW
================================================================================
1. Posts & Composer (feed, create, detail, edit, delete, pin)
2. Drafts (list, save, load, delete)
3. Comments (threaded, refetch with ?since=)
4. Reactions & Polls
5. Groups (create, join, leave, members, approvals, roles)
6. Geography (countries, language areas, municipalities, places, stars)
7. Media Services (Bunny Stream video, link preview, Tenor GIF search)
8. Moderation Intake (bug reports, feature requests, feedback, reports)
9. Notifications & Users

NAMING CONVENTIONS
================================================================================
- Collections are plural ('posts', 'groups'), single resources '<thing>_detail'
- Actions are verbs on the resource ('join_group', 'approve_member')
- Video and link-preview paths keep their original, slash-less form

URL PARAMETER TYPES
================================================================================
- <int:post_id>, <int:comment_id>, <int:group_id>, <int:draft_id>
- <int:user_id>: User primary key
================================================================================
"""

from django.urls import path

from . import views

urlpatterns = [
    # ==================== POSTS & COMPOSER ====================
    path("api/posts/", views.posts, name="posts"),
    path("api/posts/<int:post_id>/", views.post_detail, name="post_detail"),
    path("api/posts/<int:post_id>/pin/", views.pin_post, name="pin_post"),

    # ==================== DRAFTS ====================
    path("api/drafts/", views.drafts, name="drafts"),
    path("api/drafts/<int:draft_id>/", views.draft_detail, name="draft_detail"),

    # ==================== COMMENTS ====================
    path("api/posts/<int:post_id>/comments/", views.comments, name="comments"),
    path("api/comments/<int:comment_id>/", views.comment_detail, name="comment_detail"),

    # ==================== REACTIONS & POLLS ====================
    path("api/posts/<int:post_id>/reactions/", views.toggle_reaction, name="toggle_reaction"),
    path("api/posts/<int:post_id>/poll/vote/", views.vote_poll, name="vote_poll"),

    # ==================== GROUPS ====================
    path("api/groups/", views.groups, name="groups"),
    path("api/groups/<int:group_id>/", views.group_detail, name="group_detail"),
    path("api/groups/<int:group_id>/join/", views.join_group, name="join_group"),
    path("api/groups/<int:group_id>/leave/", views.leave_group, name="leave_group"),
    path("api/groups/<int:group_id>/members/", views.group_members, name="group_members"),
    path("api/groups/<int:group_id>/members/<int:user_id>/approve/", views.approve_member, name="approve_member"),
    path("api/groups/<int:group_id>/members/<int:user_id>/reject/", views.reject_member, name="reject_member"),
    path("api/groups/<int:group_id>/members/<int:user_id>/role/", views.update_member_role, name="update_member_role"),

    # ==================== GEOGRAPHY ====================
    path("api/geography/countries/", views.countries, name="countries"),
    path("api/geography/language-areas/", views.language_areas, name="language_areas"),
    path("api/geography/municipalities/", views.municipalities, name="municipalities"),
    path("api/geography/places/", views.places, name="places"),
    path("api/geography/starred/", views.starred_locations, name="starred_locations"),

    # ==================== MEDIA SERVICES ====================
    path("api/video/upload", views.video_upload, name="video_upload"),
    path("api/link-preview", views.link_preview, name="link_preview"),
    path("api/gif", views.search_gifs, name="search_gifs"),

    # ==================== MODERATION INTAKE ====================
    path("api/bug-reports/", views.bug_reports, name="bug_reports"),
    path("api/feature-requests/", views.feature_requests, name="feature_requests"),
    path("api/feedback/", views.feedback, name="feedback"),
    path("api/reports/", views.submit_report, name="submit_report"),

    # ==================== NOTIFICATIONS & USERS ====================
    path("api/notifications/", views.notifications, name="notifications"),
    path("api/notifications/read/", views.mark_notifications_read, name="mark_notifications_read"),
    path("api/users/<int:user_id>/", views.user_detail, name="user_detail"),
]
