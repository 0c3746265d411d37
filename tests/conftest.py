import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from voting import services
from voting.models import ElectionRoom

STAFF_PASSWORD = "staff-pass-123"


@pytest.fixture(autouse=True)
def fast_hashing(settings):
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
    settings.FRONTEND_URL = "http://frontend.test"
    settings.ENCRYPTION_KEY = "test-encryption-key"
    settings.INVITE_TOKEN_SECRET = "test-invite-secret"


@pytest.fixture
def staff_user(db):
    return get_user_model().objects.create_user(
        username="organizer",
        email="organizer@example.com",
        password=STAFF_PASSWORD,
        is_staff=True,
    )


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def staff_client(staff_user):
    client = APIClient()
    client.force_login(staff_user)
    return client


def room_payload(room_type=ElectionRoom.TYPE_VOTING, **overrides):
    if room_type == ElectionRoom.TYPE_REVIEW:
        positions = [
            {"title": "Team Lead", "candidates": [{"name": "Ada"}]},
            {"title": "Designer", "candidates": [{"name": "Grace"}]},
        ]
    else:
        positions = [
            {"title": "President", "candidates": [{"name": "Alice"}, {"name": "Bob"}, {"name": "Carol"}]},
            {"title": "Treasurer", "candidates": [{"name": "Dave"}]},
        ]
    data = {
        "title": "Student Council 2026",
        "description": "Yearly election of the student council.",
        "room_type": room_type,
        "is_access_restricted": False,
        "positions": positions,
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_room(staff_user):
    """Create a room through the service layer and optionally open it."""
    def _make(room_type=ElectionRoom.TYPE_VOTING, status=ElectionRoom.STATUS_ACTIVE, **overrides):
        room = services.create_room(room_payload(room_type, **overrides), user=staff_user)
        if status != room.status:
            ElectionRoom.objects.filter(pk=room.pk).update(status=status)
            room = services.get_room(room.pk)
        return room
    return _make


@pytest.fixture
def voting_room(make_room):
    return make_room()


@pytest.fixture
def review_room(make_room):
    return make_room(room_type=ElectionRoom.TYPE_REVIEW)


def positions_by_title(room):
    return {position.title: position for position in room.positions.all()}


def candidate_id(room, position_title, name):
    position = positions_by_title(room)[position_title]
    return next(c.id for c in position.candidates.all() if c.name == name)
