"""Tests for vote tallies, review summaries and CSV export."""

import csv
import io
from decimal import Decimal

import pytest

from conftest import candidate_id, positions_by_title
from voting import services

pytestmark = pytest.mark.django_db


def cast(room, email, president, treasurer="Dave"):
    services.record_participant_entry(room, email)
    positions = positions_by_title(room)
    services.submit_ballot(room, email, {
        positions["President"].id: candidate_id(room, "President", president),
        positions["Treasurer"].id: candidate_id(room, "Treasurer", treasurer) if treasurer else None,
    })


def review(room, email, lead, designer):
    services.record_participant_entry(room, email)
    positions = positions_by_title(room)
    services.submit_review(room, email, {
        positions["Team Lead"].id: {"rating": Decimal(str(lead)), "feedback": f"Lead feedback from {email}"},
        positions["Designer"].id: {"rating": Decimal(str(designer)), "feedback": "Designer feedback"},
    })


class TestRoomResults:
    def test_counts_sorted_with_percentages(self, voting_room) -> None:
        cast(voting_room, "a@example.com", "Bob")
        cast(voting_room, "b@example.com", "Bob")
        cast(voting_room, "c@example.com", "Alice", treasurer=None)

        results = services.room_results(voting_room)

        assert results["total_ballots"] == 3
        assert results["is_final"] is False
        president = results["positions"][0]
        assert president["total_votes"] == 3
        assert [(c["name"], c["vote_count"], c["rank"]) for c in president["candidates"]] == [
            ("Bob", 2, 1), ("Alice", 1, 2), ("Carol", 0, 3),
        ]
        assert [c["percentage"] for c in president["candidates"]] == [66.67, 33.33, 0]
        assert [c["is_winner"] for c in president["candidates"]] == [True, False, False]

        treasurer = results["positions"][1]
        assert treasurer["total_votes"] == 2

    def test_ties_share_the_win(self, voting_room) -> None:
        cast(voting_room, "a@example.com", "Alice")
        cast(voting_room, "b@example.com", "Carol")

        president = services.room_results(voting_room)["positions"][0]
        winners = {c["name"] for c in president["candidates"] if c["is_winner"]}

        assert winners == {"Alice", "Carol"}

    def test_no_votes_means_no_winner(self, voting_room) -> None:
        results = services.room_results(voting_room)

        assert results["total_ballots"] == 0
        for position in results["positions"]:
            assert not any(c["is_winner"] for c in position["candidates"])
            assert all(c["percentage"] == 0 for c in position["candidates"])

    def test_leaderboard_across_positions(self, voting_room) -> None:
        cast(voting_room, "a@example.com", "Bob")
        cast(voting_room, "b@example.com", "Bob")
        cast(voting_room, "c@example.com", "Alice")

        leaderboard = services.room_results(voting_room)["leaderboard"]

        assert leaderboard[0]["name"] == "Dave"
        assert leaderboard[0]["vote_count"] == 3
        assert leaderboard[1]["name"] == "Bob"
        assert [row["rank"] for row in leaderboard] == list(range(1, len(leaderboard) + 1))

    def test_closed_rooms_are_final(self, make_room) -> None:
        room = make_room(status="closed")
        assert services.room_results(room)["is_final"] is True


class TestReviewResults:
    def test_average_distribution_and_feedback(self, review_room) -> None:
        review(review_room, "a@example.com", 4.5, 2)
        review(review_room, "b@example.com", 3, 2.5)
        review(review_room, "c@example.com", 0.5, 1)

        results = services.review_results(review_room)

        assert results["total_reviewers"] == 3
        lead = results["positions"][0]
        assert lead["candidate_name"] == "Ada"
        assert lead["review_count"] == 3
        assert lead["average_rating"] == 2.67
        assert [(d["name"], d["count"]) for d in lead["rating_distribution"]] == [
            ("1 Star", 1), ("2 Stars", 0), ("3 Stars", 1), ("4 Stars", 0), ("5 Stars", 1),
        ]
        assert len(lead["reviews"]) == 3

        designer = results["positions"][1]
        assert designer["average_rating"] == 1.83
        assert [d["count"] for d in designer["rating_distribution"]] == [1, 1, 1, 0, 0]

    def test_feedback_is_newest_first(self, review_room) -> None:
        review(review_room, "first@example.com", 4, 4)
        review(review_room, "second@example.com", 5, 5)

        feedback = [r["feedback"] for r in services.review_results(review_room)["positions"][0]["reviews"]]

        assert feedback == ["Lead feedback from second@example.com", "Lead feedback from first@example.com"]

    def test_no_reviews_yet(self, review_room) -> None:
        lead = services.review_results(review_room)["positions"][0]

        assert lead["average_rating"] is None
        assert all(d["count"] == 0 for d in lead["rating_distribution"])


class TestResultsEndpoints:
    def test_voting_results(self, staff_client, voting_room) -> None:
        cast(voting_room, "a@example.com", "Alice")

        body = staff_client.get(f"/api/admin/rooms/{voting_room.id}/results/").json()

        assert body["room_type"] == "voting"
        assert body["positions"][0]["candidates"][0]["name"] == "Alice"

    def test_review_results(self, staff_client, review_room) -> None:
        body = staff_client.get(f"/api/admin/rooms/{review_room.id}/results/").json()

        assert body["room_type"] == "review"
        assert "rating_distribution" in body["positions"][0]

    def test_results_are_admin_only(self, api_client, voting_room) -> None:
        assert api_client.get(f"/api/admin/rooms/{voting_room.id}/results/").status_code == 403

    def test_voting_csv_export(self, staff_client, voting_room) -> None:
        cast(voting_room, "a@example.com", "Alice")

        response = staff_client.get(f"/api/admin/rooms/{voting_room.id}/results/export/")

        assert response.status_code == 200
        assert response["Content-Type"].startswith("text/csv")
        assert f'room-{voting_room.id}-results.csv' in response["Content-Disposition"]
        rows = list(csv.reader(io.StringIO(response.content.decode())))
        assert rows[0] == ["Position", "Rank", "Candidate", "Votes", "Winner"]
        assert rows[1] == ["President", "1", "Alice", "1", "Yes"]
        assert len(rows) == 5

    def test_review_csv_export(self, review_room) -> None:
        review(review_room, "a@example.com", 4, 3)

        rows = list(csv.reader(io.StringIO(services.export_results_csv(review_room))))

        assert rows[0] == ["Position", "Candidate", "Reviews", "Average Rating"]
        assert rows[1] == ["Team Lead", "Ada", "1", "4.00"]
        assert rows[2] == ["Designer", "Grace", "1", "3.00"]
