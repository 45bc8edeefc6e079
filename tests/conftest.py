"""
Shared Test Fixtures for the Samiske community app

Fixtures cover users and signed-in clients, the geography hierarchy,
categories, generated image/video uploads and a mocked Bunny Stream client.
Every test that touches the database asks for ``db`` through these fixtures.
"""

from unittest.mock import MagicMock

import pytest
from django.core.cache import cache
from django.core.files.storage import FileSystemStorage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import Client

from community.models import Category, Country, LanguageArea, Municipality, Place
from tests.helpers import make_image_bytes


# =============================================================================
# Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def clear_cache():
    """Throttle keys, media settings and API responses live in the cache."""
    cache.clear()
    yield
    cache.clear()


# =============================================================================
# Users & Clients
# =============================================================================

@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(
        username='ante', email='ante@example.no', password='pass12345', full_name='Ante Gaup'
    )


@pytest.fixture
def other_user(django_user_model):
    return django_user_model.objects.create_user(
        username='elle', email='elle@example.no', password='pass12345', full_name='Elle Sara'
    )


@pytest.fixture
def staff_user(django_user_model):
    return django_user_model.objects.create_user(
        username='admin', email='admin@example.no', password='pass12345', is_staff=True
    )


@pytest.fixture
def auth_client(client, user):
    client.force_login(user)
    return client


@pytest.fixture
def other_client(other_user):
    other = Client()
    other.force_login(other_user)
    return other


@pytest.fixture
def staff_client(staff_user):
    staff = Client()
    staff.force_login(staff_user)
    return staff


# =============================================================================
# Reference Data
# =============================================================================

@pytest.fixture
def categories(db):
    return {
        'generelt': Category.objects.create(name='Generelt', slug='generelt', sort_order=1),
        'arrangement': Category.objects.create(name='Arrangement', slug='arrangement', sort_order=2),
    }


@pytest.fixture
def geography(db):
    norway = Country.objects.create(name='Norge', name_sami='Norga', code='NO')
    north = LanguageArea.objects.create(name='Nordsamisk', name_sami='Davvisámegiella', code='north')
    north.countries.add(norway)
    tromso = Municipality.objects.create(
        country=norway, language_area=north, name='Tromsø', name_sami='Romsa', slug='tromso'
    )
    karasjok = Municipality.objects.create(
        country=norway, language_area=north, name='Karasjok', name_sami='Kárášjohka', slug='karasjok'
    )
    place = Place.objects.create(municipality=tromso, name='Tromsdalen', slug='tromsdalen')
    return {
        'country': norway,
        'language_area': north,
        'municipality': tromso,
        'other_municipality': karasjok,
        'place': place,
    }


# =============================================================================
# Uploads
# =============================================================================

@pytest.fixture
def image_upload():
    def factory(name='bilde.png', content_type='image/png', **kwargs):
        return SimpleUploadedFile(name, make_image_bytes(**kwargs), content_type=content_type)
    return factory


@pytest.fixture
def video_upload():
    def factory(name='film.mp4', size=2048):
        return SimpleUploadedFile(name, b'\x00' * size, content_type='video/mp4')
    return factory


@pytest.fixture
def media_storage(tmp_path):
    return FileSystemStorage(location=str(tmp_path), base_url='/media/')


# =============================================================================
# External Services
# =============================================================================

@pytest.fixture
def mock_video_client():
    """Bunny Stream client stand-in returning a fixed video descriptor."""
    client = MagicMock()
    client.configured = True
    client.create_video.return_value = {
        'videoId': 'vid-123',
        'libraryId': '12345',
        'uploadUrl': 'https://video.bunnycdn.com/library/12345/videos/vid-123',
        'thumbnailUrl': 'https://vz-test.b-cdn.net/vid-123/thumbnail.jpg',
        'playbackUrl': 'https://iframe.mediadelivery.net/embed/12345/vid-123',
        'hlsUrl': 'https://vz-test.b-cdn.net/vid-123/playlist.m3u8',
    }
    client.get_status.return_value = {
        'status': 4, 'encodeProgress': 100, 'length': 42, 'width': 1920, 'height': 1080, 'isReady': True,
    }

    def read_all(video_id, body):
        while body.read(1024):
            pass
    client.upload.side_effect = read_all
    return client

