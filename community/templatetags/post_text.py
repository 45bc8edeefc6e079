# community/templatetags/post_text.py
import re

from django import template
from django.urls import reverse
from django.utils.html import escape
from django.utils.http import urlencode
from django.utils.safestring import mark_safe

register = template.Library()

# Stored form written by the composer: @[Name](user:42) / @[Name](group:7)
MENTION_PATTERN = re.compile(r'@\[([^\]]+)\]\((user|group):(\d+)\)')
# Skip '#' inside escaped entities such as &#x27;
HASHTAG_PATTERN = re.compile(r'(?<![&\w])#(\w+)')


@register.filter
def render_post_content(value):
    """
    Render stored post or comment text as HTML.

    Supports:
    - @[Name](type:id) mentions: links to the user profile or group
    - #hashtags: links to the post feed filtered by tag
    - Line breaks: converted to <br>
    Everything else is escaped.
    """
    if not value:
        return ''

    text = escape(value)

    def replace_mention(match):
        name, kind, target_id = match.groups()
        if kind == 'group':
            url = reverse('group_detail', args=[target_id])
            css = 'mention mention-group'
        else:
            url = reverse('user_detail', args=[target_id])
            css = 'mention'
        return f'<a href="{url}" class="{css}">@{name}</a>'

    def replace_hashtag(match):
        tag = match.group(1)
        url = f"{reverse('posts')}?{urlencode({'hashtag': tag.lower()})}"
        return f'<a href="{url}" class="hashtag">#{tag}</a>'

    text = MENTION_PATTERN.sub(replace_mention, text)
    text = HASHTAG_PATTERN.sub(replace_hashtag, text)
    text = text.replace('\r\n', '\n').replace('\n', '<br>')
    return mark_safe(text)


@register.filter
def plain_mentions(value):
    """Strip the stored mention markup, leaving '@Name'."""
    if not value:
        return ''
    return MENTION_PATTERN.sub(lambda m: f'@{m.group(1)}', value)
