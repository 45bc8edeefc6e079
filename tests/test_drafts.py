"""
Tests for draft persistence and the debounced autosaver.
"""

from datetime import date, time
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.test import override_settings

from community.composer import PostComposer
from community.composer.drafts import (
    DraftAutosaver,
    delete_draft,
    list_drafts,
    load_draft,
    save_draft,
    serialize_draft,
)
from community.composer.state import ComposerState, GeographySelection, MediaItem
from community.models import Group, GroupMember, PostDraft

pytestmark = pytest.mark.django_db


def hosted(media_id, **kwargs):
    return MediaItem(id=media_id, type='image', url=f'https://cdn.example/{media_id}.jpg', **kwargs)


# =============================================================================
# CRUD
# =============================================================================

class TestSaveDraft:

    def test_creates_row_with_geography_and_hosted_media_only(self, user, geography):
        state = ComposerState(
            title='Utkast',
            content='Tekst',
            post_type='event',
            event_date='2026-02-06',
            event_time='18:00',
            event_location='Romsa',
            geography=GeographySelection('municipality', geography['municipality'].id),
            media=(hosted('a'), MediaItem(id='queued', type='image')),
            selected_circles=(1, 2),
        )

        draft = save_draft(user, state)

        assert draft.user == user
        assert draft.event_date == date(2026, 2, 6)
        assert draft.event_time == time(18, 0)
        assert draft.municipality_id == geography['municipality'].id
        assert draft.language_area_id is None
        assert [row['id'] for row in draft.media] == ['a']
        assert draft.media[0]['url'] == 'https://cdn.example/a.jpg'
        assert draft.selected_circles == [1, 2]

    def test_invalid_event_strings_saved_as_empty(self, user):
        draft = save_draft(user, ComposerState(title='x', event_date='i morgen', event_time='snart'))

        assert draft.event_date is None
        assert draft.event_time is None

    def test_updates_existing_draft(self, user):
        first = save_draft(user, ComposerState(title='Første'))
        second = save_draft(user, ComposerState(title='Andre', draft_id=first.id))

        assert second.id == first.id
        assert PostDraft.objects.get(id=first.id).title == 'Andre'
        assert PostDraft.objects.count() == 1

    def test_foreign_draft_id_creates_new_row(self, user, other_user):
        foreign = save_draft(other_user, ComposerState(title='Ikke din'))

        mine = save_draft(user, ComposerState(title='Min', draft_id=foreign.id))

        assert mine.id != foreign.id
        assert PostDraft.objects.get(id=foreign.id).title == 'Ikke din'

    def test_group_context_kept_only_for_members(self, user, other_user):
        group = Group.objects.create(name='Joikere', slug='joikere', group_type='hidden')
        GroupMember.objects.create(group=group, user=other_user, role='admin', status='approved')

        assert save_draft(user, ComposerState(title='Utenfor', group_id=group.id)).group_id is None

        GroupMember.objects.create(group=group, user=user, status='approved')

        assert save_draft(user, ComposerState(title='Innenfor', group_id=group.id)).group_id == group.id


class TestLoadDraft:

    def test_round_trip(self, user, geography):
        geo = GeographySelection('place', geography['place'].id)
        saved = save_draft(user, ComposerState(
            title='Utkast', content='Hei #joik', geography=geo, media=(hosted('a', caption='Nordlys'),),
            event_time='09:30',
        ))

        action = load_draft(saved)

        snapshot = action.draft
        assert snapshot.id == saved.id
        assert snapshot.geography == GeographySelection('place', geography['place'].id)
        assert snapshot.event_time == '09:30'
        assert snapshot.media[0].caption == 'Nordlys'
        assert snapshot.media[0].upload_progress == 100

    def test_serialize_draft(self, user, geography):
        geo = GeographySelection('language_area', geography['language_area'].id)
        saved = save_draft(user, ComposerState(title='Utkast', geography=geo))

        data = serialize_draft(saved)

        assert data['geography'] == {'type': 'language_area', 'id': geography['language_area'].id}
        assert data['event_date'] == ''
        assert data['title'] == 'Utkast'


class TestListAndDelete:

    @override_settings(COMPOSER={'MAX_DRAFTS': 2})
    def test_list_is_capped_newest_first(self, user):
        for title in ('a', 'b', 'c'):
            save_draft(user, ComposerState(title=title))

        titles = [draft.title for draft in list_drafts(user)]

        assert titles == ['c', 'b']

    def test_delete_only_own_draft(self, user, other_user):
        draft = save_draft(user, ComposerState(title='x'))

        assert delete_draft(other_user, draft.id) is False
        assert delete_draft(user, draft.id) is True
        assert not PostDraft.objects.exists()


# =============================================================================
# Autosave
# =============================================================================

class TestDraftAutosaver:

    def test_flush_skips_empty_state(self, user):
        composer = PostComposer(user)

        assert DraftAutosaver(composer, interval=60).flush() is None
        assert not PostDraft.objects.exists()

    def test_flush_saves_and_marks_clean(self, user):
        composer = PostComposer(user)
        composer.set_title('Lagres')

        draft_id = DraftAutosaver(composer, interval=60).flush()

        assert draft_id == PostDraft.objects.get().id
        assert composer.state.draft_id == draft_id
        assert composer.state.is_dirty is False
        assert composer.state.is_saving_draft is False
        assert composer.last_saved_at is not None

    def test_flush_failure_clears_saving_flag(self, user):
        composer = PostComposer(user)
        composer.set_title('Feiler')

        with patch('community.composer.drafts.save_draft', side_effect=DatabaseError('down')):
            assert DraftAutosaver(composer, interval=60).flush() is None

        assert composer.state.is_saving_draft is False
        assert composer.state.is_dirty is True

    def test_timer_run_only_saves_dirty_state(self, user):
        composer = PostComposer(user)
        autosaver = DraftAutosaver(composer, interval=60)

        autosaver._run()
        assert not PostDraft.objects.exists()

        composer.set_title('Skitten')
        autosaver._run()
        assert PostDraft.objects.get().title == 'Skitten'

    def test_schedule_and_cancel(self, user):
        autosaver = DraftAutosaver(PostComposer(user), interval=3600)

        autosaver.schedule()
        assert autosaver.pending
        autosaver.cancel()
        assert not autosaver.pending

    def test_edits_schedule_autosave_and_close_cancels(self, user):
        composer = PostComposer(user, autosave=True, config={'AUTOSAVE_INTERVAL': 3600})

        composer.update_media('missing', upload_progress=10)
        assert not composer._autosaver.pending

        composer.set_title('Endret')
        assert composer._autosaver.pending

        composer.close()
        assert not composer._autosaver.pending
