"""
Tests for PostComposer: setters, media handling, draft actions, reset and
cancellation of background work.
"""

from unittest.mock import MagicMock, patch

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from PIL import Image

from community.composer import GeographySelection, PostComposer, mark_video_ready
from community.composer import controller
from community.composer.drafts import save_draft
from community.composer.media import VideoStatusPoller
from community.composer.state import ComposerState
from community.models import Post, PostDraft, PostVideo

pytestmark = pytest.mark.django_db


# =============================================================================
# Setters
# =============================================================================

class TestSetters:

    def test_preselects_default_category(self, user, categories):
        composer = PostComposer(user)

        assert composer.state.category_id == categories['generelt'].id
        assert composer.state.is_dirty is False

    def test_event_type_selects_event_category(self, user, categories):
        composer = PostComposer(user)
        composer.set_post_type('event')

        assert composer.state.post_type == 'event'
        assert composer.state.category_id == categories['arrangement'].id

    def test_set_content_extracts_hashtags(self, user):
        composer = PostComposer(user)
        composer.set_content('Konsert i #Kárášjohka #joik #JOIK')

        assert composer.state.hashtags == ('kárášjohka', 'joik')
        assert composer.state.is_dirty is True

    def test_validity_properties(self, user):
        composer = PostComposer(user)
        assert not composer.is_valid

        composer.set_title('Tittel')
        composer.set_content('Innhold')
        assert composer.is_valid
        assert composer.can_submit

    def test_defaults_applied_from_context(self, user, geography):
        geo = GeographySelection('municipality', geography['municipality'].id, 'Tromsø')
        composer = PostComposer(user, default_geography=geo, group_id=4)

        assert composer.state.geography == geo
        assert composer.state.group_id == 4


# =============================================================================
# Media
# =============================================================================

class TestMedia:

    def test_add_media_queues_file(self, user, image_upload):
        composer = PostComposer(user)

        media_id = composer.add_media(image_upload())

        item = composer.state.media[0]
        assert item.id == media_id
        assert item.type == 'image'
        assert item.file is not None
        assert item.url is None

    def test_add_media_rejects_with_error(self, user):
        composer = PostComposer(user)
        pdf = SimpleUploadedFile('a.pdf', b'%PDF', content_type='application/pdf')

        assert composer.add_media(pdf) is None
        assert composer.state.error == 'Filtypen støttes ikke'
        assert composer.state.media == ()

    def test_second_video_rejected(self, user, video_upload):
        composer = PostComposer(user)
        composer.add_media(video_upload())

        assert composer.add_media(video_upload()) is None
        assert composer.state.error == 'Kun én video per innlegg'

    def test_add_gif_is_already_hosted(self, user):
        composer = PostComposer(user)
        composer.add_gif('https://media.tenor.com/a.gif', 'https://media.tenor.com/a-tiny.gif', 220, 180)

        item = composer.state.media[0]
        assert item.type == 'gif'
        assert item.upload_progress == 100
        assert item.thumbnail_url == 'https://media.tenor.com/a-tiny.gif'

    def test_caption_and_reorder(self, user, image_upload):
        composer = PostComposer(user)
        first = composer.add_media(image_upload())
        second = composer.add_media(image_upload())

        composer.update_media_caption(first, 'Nordlys')
        composer.reorder_media(reversed(composer.state.media))

        assert [item.id for item in composer.state.media] == [second, first]
        assert composer.state.media[1].caption == 'Nordlys'

    def test_upload_image_sets_url(self, user, image_upload, media_storage):
        composer = PostComposer(user, storage=media_storage)
        media_id = composer.add_media(image_upload())

        url = composer.upload_media(composer.state.media[0])

        item = composer.state.media[0]
        assert item.id == media_id
        assert item.url == url
        assert item.upload_progress == 100
        assert item.width == 64

    def test_upload_failure_recorded_on_item(self, user, image_upload):
        storage = MagicMock()
        storage.save.side_effect = OSError('disk full')
        composer = PostComposer(user, storage=storage)
        composer.add_media(image_upload())

        assert composer.upload_media(composer.state.media[0]) is None
        assert composer.state.media[0].upload_error == 'Opplasting feilet'

    def test_oversized_image_recorded_on_item(self, user, image_upload, media_storage, monkeypatch):
        monkeypatch.setattr(Image, 'MAX_IMAGE_PIXELS', 1000)
        composer = PostComposer(user, storage=media_storage)
        composer.add_media(image_upload())

        assert composer.upload_media(composer.state.media[0]) is None
        assert composer.state.media[0].upload_error == 'Opplasting feilet'

    def test_upload_video_without_polling(self, user, video_upload, mock_video_client):
        composer = PostComposer(user, video_client=mock_video_client, poll_video=False)
        composer.add_media(video_upload())

        url = composer.upload_media(composer.state.media[0])

        item = composer.state.media[0]
        assert url == 'https://iframe.mediadelivery.net/embed/12345/vid-123'
        assert item.bunny_video_id == 'vid-123'
        assert item.hls_url.endswith('playlist.m3u8')
        assert item.is_processing is True
        assert item.upload_progress is None
        assert composer._pollers == {}

    def test_upload_video_polls_until_ready(self, user, video_upload, mock_video_client, monkeypatch):
        started = []

        class RecordingPoller(VideoStatusPoller):
            def start(self):
                started.append(self)
                super().start()

        monkeypatch.setattr(controller, 'VideoStatusPoller', RecordingPoller)
        composer = PostComposer(
            user, video_client=mock_video_client, config={'VIDEO_POLL_INTERVAL': 0, 'VIDEO_POLL_TIMEOUT': 5}
        )
        composer.add_media(video_upload())

        with patch.object(controller, 'mark_video_ready') as mark_ready:
            composer.upload_media(composer.state.media[0])
            started[0].join(timeout=5)

        mark_ready.assert_called_once_with('vid-123', mock_video_client.get_status.return_value)
        assert composer.state.media[0].is_processing is False
        assert composer._pollers == {}

    def test_remove_media_cancels_its_poller(self, user, image_upload):
        composer = PostComposer(user)
        media_id = composer.add_media(image_upload())
        poller = MagicMock()
        composer._pollers[media_id] = poller

        composer.remove_media(media_id)

        poller.cancel.assert_called_once()
        assert composer.state.media == ()


class TestMarkVideoReady:

    def test_updates_matching_rows(self, user):
        post = Post.objects.create(user=user, title='Video', content='x')
        PostVideo.objects.create(post=post, bunny_video_id='vid-9', bunny_library_id='12345')

        updated = mark_video_ready('vid-9', {'length': 61, 'width': 1280, 'height': 720})

        video = PostVideo.objects.get(post=post)
        assert updated == 1
        assert video.status == 'ready'
        assert video.duration == 61
        assert (video.width, video.height) == (1280, 720)

    def test_unknown_video_is_noop(self):
        assert mark_video_ready('missing') == 0


# =============================================================================
# Drafts, Reset & Close
# =============================================================================

class TestComposerActions:

    def test_save_draft_sets_draft_id(self, user):
        composer = PostComposer(user)
        composer.set_title('Utkast')

        draft_id = composer.save_draft()

        assert composer.has_draft
        assert composer.state.draft_id == draft_id
        assert composer.is_saving_draft is False

    def test_load_draft_by_id(self, user, geography):
        geo = GeographySelection('municipality', geography['municipality'].id)
        draft = save_draft(user, ComposerState(title='Lagret', content='Hei', geography=geo))
        composer = PostComposer(user)

        composer.load_draft(draft.id)

        assert composer.state.title == 'Lagret'
        assert composer.state.geography == geo
        assert composer.state.is_dirty is False

    def test_load_foreign_draft_raises(self, user, other_user):
        draft = save_draft(other_user, ComposerState(title='Ikke din'))
        composer = PostComposer(user)

        with pytest.raises(PostDraft.DoesNotExist):
            composer.load_draft(draft.id)

    def test_clear_draft_deletes_and_resets(self, user):
        composer = PostComposer(user)
        composer.set_title('Forkast')
        composer.save_draft()

        composer.clear_draft()

        assert not PostDraft.objects.exists()
        assert composer.state.title == ''
        assert not composer.has_draft

    def test_reset_restores_defaults(self, user, categories, geography):
        geo = GeographySelection('place', geography['place'].id)
        composer = PostComposer(user, default_geography=geo, group_id=2)
        composer.set_title('x')
        composer.set_geography(None)
        composer.set_category(categories['arrangement'].id)

        composer.reset()

        assert composer.state.title == ''
        assert composer.state.geography == geo
        assert composer.state.group_id == 2
        assert composer.state.category_id == categories['generelt'].id
        assert composer.state.is_dirty is False

    def test_close_cancels_pollers(self, user):
        composer = PostComposer(user)
        pollers = [MagicMock(), MagicMock()]
        composer._pollers.update({'a': pollers[0], 'b': pollers[1]})

        composer.close()

        for poller in pollers:
            poller.cancel.assert_called_once()
        assert composer._pollers == {}
