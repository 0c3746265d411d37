"""Tests for the participant flow: access, invitation link, entry and ballot."""

import pytest

from authentication.crypto_utils import hash_email
from authentication.tokens import create_invite_token
from conftest import candidate_id, positions_by_title
from voting import services
from voting.models import BallotSelection, ElectionRoom, Voter

pytestmark = pytest.mark.django_db

VOTER = "voter@example.com"


def vote_url(room_id, suffix=""):
    return f"/api/vote/{room_id}/{suffix}"


def enter(client, room, email=VOTER, **extra):
    data = {"email": email, "rules_acknowledged": True}
    data.update(extra)
    return client.post(vote_url(room.id, "enter/"), data, format="json")


def full_ballot(room, president="Alice"):
    positions = positions_by_title(room)
    return {
        str(positions["President"].id): candidate_id(room, "President", president),
        str(positions["Treasurer"].id): candidate_id(room, "Treasurer", "Dave"),
    }


class TestRoomAccess:
    def test_open_room_grants_access(self, api_client, voting_room) -> None:
        response = api_client.post("/api/vote/access/", {"room_id": voting_room.id}, format="json")

        assert response.status_code == 200
        assert response.json()["room_type"] == "voting"

    def test_unknown_room(self, api_client, db) -> None:
        response = api_client.post("/api/vote/access/", {"room_id": 404}, format="json")
        assert response.status_code == 404

    def test_pending_room_is_not_open(self, api_client, make_room) -> None:
        room = make_room(status="pending")
        response = api_client.post("/api/vote/access/", {"room_id": room.id}, format="json")

        assert response.status_code == 400
        assert response.json()["detail"] == "This room has not opened yet."

    def test_restricted_room_checks_code(self, api_client, make_room) -> None:
        room = make_room(is_access_restricted=True, access_code="ABCD")

        wrong = api_client.post("/api/vote/access/", {"room_id": room.id, "access_code": "NOPE"}, format="json")
        right = api_client.post("/api/vote/access/", {"room_id": room.id, "access_code": "ABCD"}, format="json")

        assert wrong.status_code == 403
        assert right.status_code == 200


class TestPublicRoom:
    def test_ballot_definition_has_no_counts(self, api_client, voting_room) -> None:
        body = api_client.get(vote_url(voting_room.id)).json()

        assert body["title"] == voting_room.title
        assert "participant_counts" not in body
        assert "vote_count" not in body["positions"][0]["candidates"][0]

    def test_closed_room_is_refused(self, api_client, make_room) -> None:
        room = make_room(status="closed")
        response = api_client.get(vote_url(room.id))

        assert response.status_code == 400
        assert response.json()["status"] == "closed"


class TestWaitingRoom:
    def test_invite_link_moves_voter_to_waiting(self, api_client, voting_room) -> None:
        services.invite_voter(voting_room, VOTER)
        token = create_invite_token(VOTER, voting_room.id)

        response = api_client.get(vote_url(voting_room.id, "waiting/"), {"token": token})

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert response.json()["email"] == VOTER
        assert services.get_voter(voting_room, VOTER).status == Voter.STATUS_WAITING

    def test_missing_token(self, api_client, voting_room) -> None:
        response = api_client.get(vote_url(voting_room.id, "waiting/"))
        assert response.status_code == 400

    def test_token_for_another_room(self, api_client, make_room) -> None:
        room, other = make_room(), make_room()
        services.invite_voter(room, VOTER)

        response = api_client.get(vote_url(other.id, "waiting/"), {"token": create_invite_token(VOTER, room.id)})

        assert response.status_code == 400
        assert response.json()["detail"] == "This invitation is not valid for this election."

    def test_uninvited_email(self, api_client, voting_room) -> None:
        token = create_invite_token("stranger@example.com", voting_room.id)
        response = api_client.get(vote_url(voting_room.id, "waiting/"), {"token": token})
        assert response.status_code == 404

    def test_completed_voter_is_told_already_voted(self, api_client, voting_room) -> None:
        services.invite_voter(voting_room, VOTER)
        Voter.objects.filter(room=voting_room).update(status=Voter.STATUS_COMPLETED)

        response = api_client.get(
            vote_url(voting_room.id, "waiting/"),
            {"token": create_invite_token(VOTER, voting_room.id)},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "already_voted"

    def test_pending_room_keeps_voter_invited(self, api_client, make_room) -> None:
        room = make_room(status="pending")
        services.invite_voter(room, VOTER)

        response = api_client.get(vote_url(room.id, "waiting/"), {"token": create_invite_token(VOTER, room.id)})

        assert response.status_code == 400
        assert services.get_voter(room, VOTER).status == Voter.STATUS_INVITED


class TestParticipantEntry:
    def test_rules_must_be_acknowledged(self, api_client, voting_room) -> None:
        response = enter(api_client, voting_room, rules_acknowledged=False)

        assert response.status_code == 400
        assert "rules_acknowledged" in response.json()["detail"]

    def test_open_room_admits_new_participant(self, api_client, voting_room) -> None:
        response = enter(api_client, voting_room, email="New.Person@Example.com")

        assert response.status_code == 200
        assert response.json()["status"] == "in_room"
        voter = Voter.objects.get(room=voting_room)
        assert voter.email_hash == hash_email("new.person@example.com")
        assert voter.email == "new.person@example.com"

    def test_second_entry_is_refused(self, api_client, voting_room) -> None:
        enter(api_client, voting_room)
        response = enter(api_client, voting_room)

        assert response.status_code == 409
        assert response.json()["error"] == "Already entered"

    def test_restricted_room_needs_code_or_invite(self, api_client, make_room) -> None:
        room = make_room(is_access_restricted=True, access_code="ABCD")
        services.invite_voter(room, "invited@example.com")

        assert enter(api_client, room, email="walkin@example.com").status_code == 403
        assert enter(api_client, room, email="walkin@example.com", access_code="ABCD").status_code == 200
        assert enter(api_client, room, email="invited@example.com").status_code == 200

    def test_closed_room(self, api_client, make_room) -> None:
        room = make_room(status="closed")
        response = enter(api_client, room)

        assert response.status_code == 400
        assert response.json()["detail"] == "This room is closed."


class TestBallotSubmission:
    def test_full_ballot(self, api_client, voting_room) -> None:
        enter(api_client, voting_room)

        response = api_client.post(
            vote_url(voting_room.id, "ballot/"),
            {"email": VOTER, "selections": full_ballot(voting_room)},
            format="json",
        )

        assert response.status_code == 201
        assert response.json()["selections_recorded"] == 2
        assert services.check_user_has_voted(voting_room, VOTER)
        hashes = set(BallotSelection.objects.values_list("session_hash", flat=True))
        assert len(hashes) == 1

    def test_ballot_is_not_linked_to_the_voter(self, api_client, voting_room) -> None:
        enter(api_client, voting_room)
        api_client.post(
            vote_url(voting_room.id, "ballot/"),
            {"email": VOTER, "selections": full_ballot(voting_room)},
            format="json",
        )

        field_names = {field.name for field in BallotSelection._meta.get_fields()}
        assert not field_names & {"voter", "email", "email_hash"}

    def test_second_ballot_is_refused(self, api_client, voting_room) -> None:
        enter(api_client, voting_room)
        url = vote_url(voting_room.id, "ballot/")
        api_client.post(url, {"email": VOTER, "selections": full_ballot(voting_room)}, format="json")

        response = api_client.post(url, {"email": VOTER, "selections": full_ballot(voting_room, "Bob")}, format="json")

        assert response.status_code == 409
        assert BallotSelection.objects.count() == 2

    def test_must_enter_first(self, api_client, voting_room) -> None:
        response = api_client.post(
            vote_url(voting_room.id, "ballot/"),
            {"email": VOTER, "selections": full_ballot(voting_room)},
            format="json",
        )
        assert response.status_code == 404

    def test_invited_but_not_entered(self, api_client, voting_room) -> None:
        services.invite_voter(voting_room, VOTER)
        response = api_client.post(
            vote_url(voting_room.id, "ballot/"),
            {"email": VOTER, "selections": full_ballot(voting_room)},
            format="json",
        )
        assert response.status_code == 403

    def test_single_candidate_position_may_be_abstained(self, api_client, voting_room) -> None:
        enter(api_client, voting_room)
        positions = positions_by_title(voting_room)
        selections = {
            str(positions["President"].id): candidate_id(voting_room, "President", "Bob"),
            str(positions["Treasurer"].id): None,
        }

        response = api_client.post(
            vote_url(voting_room.id, "ballot/"),
            {"email": VOTER, "selections": selections},
            format="json",
        )

        assert response.status_code == 201
        assert response.json()["selections_recorded"] == 1

    def test_multi_candidate_position_needs_a_choice(self, api_client, voting_room) -> None:
        enter(api_client, voting_room)
        positions = positions_by_title(voting_room)
        selections = {str(positions["Treasurer"].id): candidate_id(voting_room, "Treasurer", "Dave")}

        response = api_client.post(
            vote_url(voting_room.id, "ballot/"),
            {"email": VOTER, "selections": selections},
            format="json",
        )

        assert response.status_code == 400
        assert "President" in response.json()["detail"]
        assert not BallotSelection.objects.exists()
        assert services.get_voter(voting_room, VOTER).status == Voter.STATUS_IN_ROOM

    def test_candidate_from_another_position(self, api_client, voting_room) -> None:
        enter(api_client, voting_room)
        positions = positions_by_title(voting_room)
        selections = {
            str(positions["President"].id): candidate_id(voting_room, "Treasurer", "Dave"),
            str(positions["Treasurer"].id): None,
        }

        response = api_client.post(
            vote_url(voting_room.id, "ballot/"),
            {"email": VOTER, "selections": selections},
            format="json",
        )

        assert response.status_code == 400

    def test_review_room_refuses_ballots(self, api_client, review_room) -> None:
        enter(api_client, review_room)
        response = api_client.post(
            vote_url(review_room.id, "ballot/"),
            {"email": VOTER, "selections": {}},
            format="json",
        )
        assert response.status_code == 400


class TestRoomClosedMidway:
    def test_ballot_after_room_closed(self, voting_room) -> None:
        services.record_participant_entry(voting_room, VOTER)
        ElectionRoom.objects.filter(pk=voting_room.pk).update(status=ElectionRoom.STATUS_CLOSED)

        with pytest.raises(services.RoomNotOpenError):
            services.submit_ballot(voting_room, VOTER, full_ballot(voting_room))

        assert not BallotSelection.objects.exists()
        assert services.get_voter(voting_room, VOTER).status == Voter.STATUS_IN_ROOM

    def test_entry_after_room_closed(self, voting_room) -> None:
        ElectionRoom.objects.filter(pk=voting_room.pk).update(status=ElectionRoom.STATUS_CLOSED)

        with pytest.raises(services.RoomNotOpenError):
            services.record_participant_entry(voting_room, VOTER)

        assert services.get_voter(voting_room, VOTER) is None


class TestVoterStatus:
    def test_status_before_and_after_voting(self, api_client, voting_room) -> None:
        url = vote_url(voting_room.id, "status/")
        assert api_client.get(url, {"email": VOTER}).json() == {
            "room_id": voting_room.id,
            "has_voted": False,
            "status": None,
        }

        enter(api_client, voting_room)
        api_client.post(
            vote_url(voting_room.id, "ballot/"),
            {"email": VOTER, "selections": full_ballot(voting_room)},
            format="json",
        )

        body = api_client.get(url, {"email": VOTER}).json()
        assert body["has_voted"] is True
        assert body["status"] == "completed"

    def test_email_is_required(self, api_client, voting_room) -> None:
        assert api_client.get(vote_url(voting_room.id, "status/")).status_code == 400
