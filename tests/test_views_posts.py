"""
Tests for the post feed, post creation through the composer endpoint,
post detail editing/deletion, pinning and the draft endpoints.
"""

import json
from datetime import timedelta

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse
from django.utils import timezone

from community.models import Circle, Group, GroupMember, Hashtag, Post, PostDraft

pytestmark = pytest.mark.django_db


def post_json(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type='application/json')


def put_json(client, url, payload):
    return client.put(url, data=json.dumps(payload), content_type='application/json')


def make_post(user, title='Innlegg', **kwargs):
    kwargs.setdefault('content', 'Innhold')
    return Post.objects.create(user=user, title=title, **kwargs)


def feed_titles(client, **params):
    response = client.get(reverse('posts'), params)
    assert response.status_code == 200
    return [post['title'] for post in response.json()['posts']]


# =============================================================================
# Feed
# =============================================================================

class TestFeed:

    def test_anonymous_sees_public_posts_only(self, client, user):
        make_post(user, 'Offentlig')
        make_post(user, 'Medlemmer', visibility='members')

        assert feed_titles(client) == ['Offentlig']

    def test_members_visibility_for_signed_in(self, auth_client, other_user):
        make_post(other_user, 'Medlemmer', visibility='members')
        make_post(other_user, 'Privat', visibility='only_me')

        assert feed_titles(auth_client) == ['Medlemmer']

    def test_friends_and_circles_visibility(self, auth_client, user, other_user, django_user_model):
        stranger = django_user_model.objects.create_user(username='fremmed', password='x')
        circle = Circle.objects.create(owner=other_user, name='Familie')
        circle.members.add(user)
        make_post(other_user, 'Venner', visibility='friends')
        in_circle = make_post(other_user, 'Sirkel', visibility='circles')
        in_circle.circles.add(circle)
        make_post(stranger, 'Fremmed venner', visibility='friends')

        assert sorted(feed_titles(auth_client)) == ['Sirkel', 'Venner']

    def test_scheduled_posts_hidden_until_due(self, client, user):
        make_post(user, 'Senere', scheduled_for=timezone.now() + timedelta(days=1))
        make_post(user, 'Tidligere', scheduled_for=timezone.now() - timedelta(minutes=1))

        assert feed_titles(client) == ['Tidligere']

    def test_author_sees_own_scheduled_post(self, auth_client, user):
        make_post(user, 'Senere', scheduled_for=timezone.now() + timedelta(days=1))

        assert feed_titles(auth_client) == ['Senere']

    def test_closed_group_posts_need_membership(self, auth_client, user, other_user):
        group = Group.objects.create(name='Lukket', slug='lukket', group_type='closed')
        make_post(other_user, 'Gruppeinnlegg', group=group)

        assert feed_titles(auth_client) == []

        GroupMember.objects.create(group=group, user=user, status='approved')
        assert feed_titles(auth_client) == ['Gruppeinnlegg']

    def test_filters(self, client, user, categories, geography):
        tagged = make_post(user, 'Joik', category=categories['generelt'], municipality=geography['municipality'])
        tagged.hashtags.add(Hashtag.objects.create(name='joik'))
        make_post(user, 'Annet', category=categories['arrangement'])

        assert feed_titles(client, hashtag='#Joik') == ['Joik']
        assert feed_titles(client, category='arrangement') == ['Annet']
        assert feed_titles(client, municipality=str(geography['municipality'].id)) == ['Joik']

    def test_pinned_first_and_paginated(self, client, user):
        for index in range(11):
            make_post(user, f'Innlegg {index}')
        pinned = make_post(user, 'Festet')
        Post.objects.filter(id=pinned.id).update(created_at=timezone.now() + timedelta(minutes=1))
        Post.objects.filter(title='Innlegg 0').update(is_pinned=True)

        response = client.get(reverse('posts'))

        data = response.json()
        assert data['posts'][0]['title'] == 'Innlegg 0'
        assert data['posts'][1]['title'] == pinned.title
        assert len(data['posts']) == 10
        assert data['num_pages'] == 2
        assert data['has_next'] is True


# =============================================================================
# Create
# =============================================================================

class TestCreatePost:

    def test_anonymous_rejected(self, client):
        response = post_json(client, reverse('posts'), {'title': 'x', 'content': 'y'})

        assert response.status_code == 401

    def test_create_with_json(self, auth_client, user, other_user, categories, geography):
        payload = {
            'title': 'Sámi nasjonaldag',
            'content': 'Hei @Elle Sara! #nasjonaldag',
            'mentions': [{'id': other_user.id, 'name': 'Elle Sara'}],
            'geography': {'type': 'municipality', 'id': geography['municipality'].id},
            'poll': {'question': 'Kommer du?', 'options': ['Ja', 'Nei']},
        }

        response = post_json(auth_client, reverse('posts'), payload)

        assert response.status_code == 201
        data = response.json()
        post = Post.objects.get(id=data['id'])
        assert post.user == user
        assert post.municipality == geography['municipality']
        assert data['post']['hashtags'] == ['nasjonaldag']
        assert data['post']['category']['slug'] == 'generelt'
        assert [option['text'] for option in data['post']['poll']['options']] == ['Ja', 'Nei']
        assert f'href="/api/users/{other_user.id}/"' in data['post']['content_html']

    def test_create_event(self, auth_client, categories, geography):
        payload = {
            'title': 'Konsert',
            'content': 'Joik i kveld',
            'post_type': 'event',
            'event': {'date': '2026-02-06', 'time': '19:00', 'location': 'Kulturhuset'},
            'geography': {'type': 'place', 'id': geography['place'].id},
        }

        response = post_json(auth_client, reverse('posts'), payload)

        assert response.status_code == 201
        event = response.json()['post']['event']
        assert event == {
            'date': '2026-02-06', 'time': '19:00', 'end_time': None, 'location': 'Kulturhuset', 'is_digital': False,
        }

    def test_create_with_uploaded_image(self, auth_client, image_upload):
        state = {'title': 'Bilde', 'content': 'Se her', 'media_meta': [{'caption': 'Nordlys'}]}

        response = auth_client.post(reverse('posts'), {'state': json.dumps(state), 'media': [image_upload()]})

        assert response.status_code == 201
        images = response.json()['post']['images']
        assert len(images) == 1
        assert images[0]['caption'] == 'Nordlys'
        assert '/post-images/' in images[0]['url']

    def test_rejected_file_type(self, auth_client):
        pdf = SimpleUploadedFile('a.pdf', b'%PDF-1.4', content_type='application/pdf')
        state = {'title': 'x', 'content': 'y'}

        response = auth_client.post(reverse('posts'), {'state': json.dumps(state), 'media': [pdf]})

        assert response.status_code == 400
        assert response.json()['error'] == 'Filtypen støttes ikke'

    def test_validation_error(self, auth_client):
        response = post_json(auth_client, reverse('posts'), {'title': '', 'content': 'y'})

        assert response.status_code == 400
        assert response.json()['error'] == 'Tittel er påkrevd'
        assert not Post.objects.exists()

    def test_non_member_cannot_post_to_group(self, auth_client, other_user):
        group = Group.objects.create(name='Skjult', slug='skjult', group_type='hidden')
        GroupMember.objects.create(group=group, user=other_user, role='admin', status='approved')

        response = post_json(auth_client, reverse('posts'), {'title': 'Inn', 'content': 'x', 'group_id': group.id})

        assert response.status_code == 400
        assert response.json()['error'] == 'Du må være medlem av gruppen for å publisere her'
        assert not Post.objects.exists()

    def test_pending_member_cannot_post_to_group(self, auth_client, user):
        group = Group.objects.create(name='Lukket', slug='lukket', group_type='closed')
        GroupMember.objects.create(group=group, user=user, status='pending')

        response = post_json(auth_client, reverse('posts'), {'title': 'Inn', 'content': 'x', 'group_id': group.id})

        assert response.status_code == 400
        assert not Post.objects.exists()

    def test_approved_member_posts_to_group(self, auth_client, user):
        group = Group.objects.create(name='Lukket', slug='lukket', group_type='closed')
        GroupMember.objects.create(group=group, user=user, status='approved')

        response = post_json(auth_client, reverse('posts'), {'title': 'Inn', 'content': 'x', 'group_id': group.id})

        assert response.status_code == 201
        assert Post.objects.get(id=response.json()['id']).group == group

    def test_bad_payload(self, auth_client):
        response = auth_client.post(reverse('posts'), data='ikke json', content_type='application/json')
        assert response.status_code == 400

        response = post_json(auth_client, reverse('posts'), {'title': 'x', 'content': 'y', 'visibility': 'alle'})
        assert response.json()['error'] == 'Ugyldig synlighet'

    def test_foreign_draft_is_404(self, auth_client, other_user):
        draft = PostDraft.objects.create(user=other_user, title='Ikke din')

        response = post_json(auth_client, reverse('posts'), {'draft_id': draft.id})

        assert response.status_code == 404

    def test_publishing_a_draft_deletes_it(self, auth_client, user):
        draft = PostDraft.objects.create(user=user, title='Fra utkast', content='Innhold')

        response = post_json(auth_client, reverse('posts'), {'draft_id': draft.id})

        assert response.status_code == 201
        assert response.json()['post']['title'] == 'Fra utkast'
        assert not PostDraft.objects.exists()


# =============================================================================
# Detail, Edit, Delete, Pin
# =============================================================================

class TestPostDetail:

    def test_get_visible_post(self, client, user):
        post = make_post(user, content='Hei #joik')

        data = client.get(reverse('post_detail', args=[post.id])).json()

        assert data['id'] == post.id
        assert '<a href="/api/posts/?hashtag=joik" class="hashtag">#joik</a>' in data['content_html']

    def test_get_hidden_post_is_404(self, client, user):
        post = make_post(user, visibility='only_me')

        assert client.get(reverse('post_detail', args=[post.id])).status_code == 404

    def test_owner_can_edit(self, auth_client, user):
        post = make_post(user)

        response = put_json(auth_client, reverse('post_detail', args=[post.id]), {
            'title': 'Ny tittel', 'content': 'Nytt innhold #ny', 'visibility': 'members',
        })

        assert response.status_code == 200
        post.refresh_from_db()
        assert post.title == 'Ny tittel'
        assert post.visibility == 'members'
        assert list(post.hashtags.values_list('name', flat=True)) == ['ny']

    def test_edit_requires_content(self, auth_client, user):
        post = make_post(user)

        response = put_json(auth_client, reverse('post_detail', args=[post.id]), {'content': '  '})

        assert response.status_code == 400
        assert response.json()['error'] == 'Innhold er påkrevd'

    def test_other_user_cannot_edit(self, other_client, user):
        post = make_post(user)

        response = put_json(other_client, reverse('post_detail', args=[post.id]), {'title': 'Kapret'})

        assert response.status_code == 404

    def test_delete_permissions(self, other_client, staff_client, user):
        post = make_post(user)
        url = reverse('post_detail', args=[post.id])

        assert other_client.delete(url).status_code == 403
        assert staff_client.delete(url).status_code == 200
        assert not Post.objects.exists()

    def test_pin_is_staff_only(self, auth_client, staff_client, user):
        post = make_post(user)
        url = reverse('pin_post', args=[post.id])

        assert auth_client.post(url).status_code == 403
        assert staff_client.post(url).json() == {'is_pinned': True}
        assert staff_client.post(url).json() == {'is_pinned': False}


# =============================================================================
# Drafts
# =============================================================================

class TestDraftEndpoints:

    def test_save_list_get_delete(self, auth_client, user):
        response = post_json(auth_client, reverse('drafts'), {'title': 'Utkast', 'content': 'Halvferdig'})

        assert response.status_code == 201
        draft_id = response.json()['id']

        listed = auth_client.get(reverse('drafts')).json()['drafts']
        assert [draft['id'] for draft in listed] == [draft_id]

        detail = auth_client.get(reverse('draft_detail', args=[draft_id])).json()
        assert detail['content'] == 'Halvferdig'

        assert auth_client.delete(reverse('draft_detail', args=[draft_id])).status_code == 200
        assert not PostDraft.objects.exists()

    def test_update_existing_draft(self, auth_client, user):
        draft = PostDraft.objects.create(user=user, title='Gammel')

        response = post_json(auth_client, reverse('drafts'), {'draft_id': draft.id, 'title': 'Ny'})

        assert response.json()['id'] == draft.id
        draft.refresh_from_db()
        assert draft.title == 'Ny'

    def test_empty_draft_rejected(self, auth_client):
        response = post_json(auth_client, reverse('drafts'), {})

        assert response.status_code == 400

    def test_other_users_draft_is_404(self, other_client, user):
        draft = PostDraft.objects.create(user=user, title='Privat')

        assert other_client.get(reverse('draft_detail', args=[draft.id])).status_code == 404
