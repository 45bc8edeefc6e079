from .controller import PostComposer, mark_video_ready
from .state import (
    ComposerState,
    GeographySelection,
    LinkPreviewData,
    MediaItem,
    MentionData,
    PollData,
    PollOption,
)

__all__ = [
    'ComposerState',
    'GeographySelection',
    'LinkPreviewData',
    'MediaItem',
    'MentionData',
    'PollData',
    'PollOption',
    'PostComposer',
    'mark_video_ready',
]
