"""
Tests for comments (threading depth, refetch, edit/delete permissions),
reactions and poll voting.
"""

import json
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from community.models import Comment, Notification, Poll, PollOption, PollVote, Post, Reaction

pytestmark = pytest.mark.django_db


def post_json(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type='application/json')


@pytest.fixture
def post(user):
    return Post.objects.create(user=user, title='Innlegg', content='Innhold')


@pytest.fixture
def poll(post):
    poll = Poll.objects.create(post=post, question='Hvor?')
    for index, text in enumerate(('Romsa', 'Kárášjohka', 'Guovdageaidnu')):
        PollOption.objects.create(poll=poll, text=text, sort_order=index)
    return poll


# =============================================================================
# Comments
# =============================================================================

class TestComments:

    def test_list_and_since(self, client, post, user):
        old = Comment.objects.create(post=post, user=user, content='Første')
        Comment.objects.filter(id=old.id).update(created_at=timezone.now() - timedelta(hours=1))
        Comment.objects.create(post=post, user=user, content='Andre')
        url = reverse('comments', args=[post.id])

        assert [c['content'] for c in client.get(url).json()['comments']] == ['Første', 'Andre']

        since = (timezone.now() - timedelta(minutes=5)).isoformat()
        assert [c['content'] for c in client.get(url, {'since': since}).json()['comments']] == ['Andre']
        assert client.get(url, {'since': 'i går'}).status_code == 400

    def test_anonymous_cannot_comment(self, client, post):
        response = post_json(client, reverse('comments', args=[post.id]), {'content': 'Hei'})

        assert response.status_code == 401

    def test_comment_notifies_post_author(self, other_client, post, user, other_user):
        response = post_json(other_client, reverse('comments', args=[post.id]), {'content': 'Flott! #joik'})

        assert response.status_code == 201
        assert 'class="hashtag"' in response.json()['content_html']
        notification = Notification.objects.get()
        assert notification.user == user
        assert notification.actor == other_user
        assert notification.verb == 'kommenterte innlegget ditt'

    def test_reply_notifies_parent_author(self, auth_client, post, user, other_user):
        parent = Comment.objects.create(post=post, user=other_user, content='Spørsmål')

        response = post_json(auth_client, reverse('comments', args=[post.id]), {
            'content': 'Svar', 'parent_id': parent.id,
        })

        assert response.status_code == 201
        assert response.json()['parent_id'] == parent.id
        assert Notification.objects.get().verb == 'svarte på kommentaren din'

    def test_reply_depth_limit(self, auth_client, post, user):
        root = Comment.objects.create(post=post, user=user, content='0')
        child = Comment.objects.create(post=post, user=user, content='1', parent=root)
        grandchild = Comment.objects.create(post=post, user=user, content='2', parent=child)
        url = reverse('comments', args=[post.id])

        assert post_json(auth_client, url, {'content': '2b', 'parent_id': child.id}).status_code == 201
        response = post_json(auth_client, url, {'content': '3', 'parent_id': grandchild.id})
        assert response.status_code == 400
        assert response.json()['error'] == 'Maksimalt svarnivå er nådd'

    def test_gif_only_comment(self, auth_client, post):
        response = post_json(auth_client, reverse('comments', args=[post.id]), {
            'media_url': 'https://media.tenor.com/a.gif',
        })

        assert response.status_code == 201
        assert response.json()['media_type'] == 'gif'

    def test_empty_comment_rejected(self, auth_client, post):
        response = post_json(auth_client, reverse('comments', args=[post.id]), {'content': '   '})

        assert response.status_code == 400

    def test_parent_from_other_post_rejected(self, auth_client, post, user):
        other_post = Post.objects.create(user=user, title='Annet', content='x')
        foreign = Comment.objects.create(post=other_post, user=user, content='Annet sted')

        response = post_json(auth_client, reverse('comments', args=[post.id]), {
            'content': 'Svar', 'parent_id': foreign.id,
        })

        assert response.status_code == 400

    def test_edit_own_comment_only(self, auth_client, other_client, post, user):
        comment = Comment.objects.create(post=post, user=user, content='Skrivefeil')
        url = reverse('comment_detail', args=[comment.id])
        payload = json.dumps({'content': 'Rettet'})

        assert other_client.put(url, payload, content_type='application/json').status_code == 404
        assert auth_client.put(url, payload, content_type='application/json').json()['content'] == 'Rettet'

    def test_post_author_can_delete_comment(self, auth_client, post, other_user):
        comment = Comment.objects.create(post=post, user=other_user, content='Spam')

        response = auth_client.delete(reverse('comment_detail', args=[comment.id]))

        assert response.status_code == 200
        assert not Comment.objects.exists()

    def test_stranger_cannot_delete_comment(self, post, user, django_user_model, client):
        comment = Comment.objects.create(post=post, user=user, content='Min')
        stranger = django_user_model.objects.create_user(username='fremmed', password='x')
        client.force_login(stranger)

        assert client.delete(reverse('comment_detail', args=[comment.id])).status_code == 403


# =============================================================================
# Reactions
# =============================================================================

class TestReactions:

    def test_toggle_cycle(self, other_client, post, user):
        url = reverse('toggle_reaction', args=[post.id])

        first = post_json(other_client, url, {'reaction_type': 'elsker'}).json()
        assert first == {'reaction': 'elsker', 'counts': {'elsker': 1}, 'total': 1}
        assert Notification.objects.get().user == user

        switched = post_json(other_client, url, {'reaction_type': 'ild'}).json()
        assert switched['reaction'] == 'ild'
        assert switched['counts'] == {'ild': 1}

        removed = post_json(other_client, url, {'reaction_type': 'ild'}).json()
        assert removed == {'reaction': None, 'counts': {}, 'total': 0}
        assert not Reaction.objects.exists()

    def test_counts_in_picker_order(self, auth_client, other_client, post):
        url = reverse('toggle_reaction', args=[post.id])
        post_json(auth_client, url, {'reaction_type': 'takk'})
        data = post_json(other_client, url, {'reaction_type': 'haha'}).json()

        assert list(data['counts']) == ['haha', 'takk']
        assert data['total'] == 2

    def test_own_reaction_does_not_notify(self, auth_client, post):
        post_json(auth_client, reverse('toggle_reaction', args=[post.id]), {'reaction_type': 'wow'})

        assert not Notification.objects.exists()

    def test_unknown_reaction(self, auth_client, post):
        response = post_json(auth_client, reverse('toggle_reaction', args=[post.id]), {'reaction_type': 'like'})

        assert response.status_code == 400


# =============================================================================
# Polls
# =============================================================================

class TestPollVoting:

    def test_vote_and_change_vote(self, other_client, post, poll, other_user):
        first, second, _third = poll.options.all()
        url = reverse('vote_poll', args=[post.id])

        post_json(other_client, url, {'option_id': first.id})
        data = post_json(other_client, url, {'option_id': second.id}).json()

        assert data['user_votes'] == [second.id]
        assert [option['votes'] for option in data['options']] == [0, 1, 0]
        assert PollVote.objects.filter(user=other_user).count() == 1

    def test_single_choice_poll_rejects_multiple(self, auth_client, post, poll):
        ids = list(poll.options.values_list('id', flat=True)[:2])

        response = post_json(auth_client, reverse('vote_poll', args=[post.id]), {'option_ids': ids})

        assert response.status_code == 400

    def test_multiple_choice_poll(self, auth_client, post, poll):
        poll.allow_multiple = True
        poll.save()
        ids = list(poll.options.values_list('id', flat=True)[:2])

        data = post_json(auth_client, reverse('vote_poll', args=[post.id]), {'option_ids': ids}).json()

        assert sorted(data['user_votes']) == sorted(ids)

    def test_closed_poll(self, auth_client, post, poll):
        poll.ends_at = timezone.now() - timedelta(minutes=1)
        poll.save()

        response = post_json(auth_client, reverse('vote_poll', args=[post.id]), {'option_id': poll.options.first().id})

        assert response.status_code == 400
        assert response.json()['error'] == 'Avstemningen er avsluttet'

    def test_option_from_other_poll(self, auth_client, post, poll, user):
        other_post = Post.objects.create(user=user, title='Annen', content='x')
        other_poll = Poll.objects.create(post=other_post, question='?')
        foreign = PollOption.objects.create(poll=other_poll, text='Nei')

        response = post_json(auth_client, reverse('vote_poll', args=[post.id]), {'option_id': foreign.id})

        assert response.status_code == 400

    @pytest.mark.parametrize('option_ids', [['abc'], [{'id': 1}], [[1]], [None]])
    def test_malformed_option_ids(self, auth_client, post, poll, option_ids):
        response = post_json(auth_client, reverse('vote_poll', args=[post.id]), {'option_ids': option_ids})

        assert response.status_code == 400
        assert response.json()['error'] == 'Ugyldig alternativ'
        assert not PollVote.objects.exists()

    def test_numeric_string_option_id(self, auth_client, post, poll):
        option = poll.options.first()

        data = post_json(auth_client, reverse('vote_poll', args=[post.id]), {'option_id': str(option.id)}).json()

        assert data['user_votes'] == [option.id]

    def test_post_without_poll(self, auth_client, post):
        response = post_json(auth_client, reverse('vote_poll', args=[post.id]), {'option_id': 1})

        assert response.status_code == 404
