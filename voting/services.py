"""
Room, voter, ballot and review operations.

Views stay thin: they validate input with serializers and call into this
module. Every write runs inside a database transaction, and the duplicate
submission checks lock the voter row with SELECT FOR UPDATE.
"""
import base64
import csv
import io
import logging
import os
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

import jwt
import qrcode
from django.conf import settings
from django.core.files.storage import default_storage
from django.core.mail import send_mail
from django.db import IntegrityError, transaction
from django.db.models import Count, Prefetch
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.text import get_valid_filename

from authentication.crypto_utils import (
    encrypt_email,
    generate_session_hash,
    hash_email,
    mask_email,
    normalize_email,
)
from authentication.tokens import create_invite_token, decode_invite_token

from .models import BallotSelection, Candidate, ElectionRoom, Position, Review, Voter

logger = logging.getLogger(__name__)

STAR_LEVELS = (1, 2, 3, 4, 5)
CANDIDATE_IMAGE_DIR = 'candidate-images'
MIN_RATING = Decimal('0.5')
MAX_RATING = Decimal('5')
RESETTABLE_STATUSES = (Voter.STATUS_INVITED, Voter.STATUS_WAITING)


# ==============================================================================
# ERRORS
# ==============================================================================

class RoomError(Exception):
    """Base class for room operation failures. Carries an HTTP status for views."""
    status_code = 400
    error = 'Request failed'


class RoomNotFoundError(RoomError):
    status_code = 404
    error = 'Room not found'


class RoomNotOpenError(RoomError):
    status_code = 400
    error = 'Room not open'


class AccessDeniedError(RoomError):
    status_code = 403
    error = 'Access denied'


class InvalidInviteError(RoomError):
    status_code = 400
    error = 'Invalid invitation'


class VoterNotFoundError(RoomError):
    status_code = 404
    error = 'Voter not found'


class AlreadyEnteredError(RoomError):
    status_code = 409
    error = 'Already entered'


class AlreadySubmittedError(RoomError):
    status_code = 409
    error = 'Already submitted'


class InvalidSubmissionError(RoomError):
    status_code = 400
    error = 'Invalid submission'


class InvalidDeletionPasswordError(RoomError):
    status_code = 403
    error = 'Invalid deletion password'


@dataclass(frozen=True)
class SubmissionReceipt:
    room_id: int
    timestamp: object
    entries_recorded: int


@dataclass(frozen=True)
class InviteResult:
    email: str
    invite_link: str
    subject: str
    body: str
    sent: bool


# ==============================================================================
# ROOMS
# ==============================================================================

def _room_queryset():
    return ElectionRoom.objects.prefetch_related(
        Prefetch('positions', queryset=Position.objects.order_by('display_order', 'id')),
        Prefetch('positions__candidates', queryset=Candidate.objects.order_by('display_order', 'id')),
    )


def get_room(room_id):
    """Fetch a room with positions and candidates, or raise RoomNotFoundError."""
    try:
        return _room_queryset().get(pk=room_id)
    except (ElectionRoom.DoesNotExist, ValueError, TypeError):
        raise RoomNotFoundError(f"No election room with id {room_id}")


def list_rooms():
    return list(_room_queryset().order_by('-created_at', '-id'))


def _sync_positions(room, positions_data):
    """
    Make the room's positions and candidates match positions_data.
    Entries carrying an existing id are updated in place so their
    ballots survive; entries without one are created; the rest are removed.
    """
    existing_positions = {p.id: p for p in room.positions.all()}
    kept_position_ids = set()

    for position_order, position_data in enumerate(positions_data):
        position = existing_positions.get(position_data.get('id'))
        if position is None:
            position = Position.objects.create(
                room=room,
                title=position_data['title'],
                display_order=position_order,
            )
        else:
            position.title = position_data['title']
            position.display_order = position_order
            position.save(update_fields=['title', 'display_order'])
        kept_position_ids.add(position.id)

        existing_candidates = {c.id: c for c in position.candidates.all()}
        kept_candidate_ids = set()
        for candidate_order, candidate_data in enumerate(position_data['candidates']):
            candidate = existing_candidates.get(candidate_data.get('id'))
            if candidate is None:
                candidate = Candidate.objects.create(
                    position=position,
                    name=candidate_data['name'],
                    image_url=candidate_data.get('image_url') or '',
                    display_order=candidate_order,
                )
            else:
                candidate.name = candidate_data['name']
                candidate.image_url = candidate_data.get('image_url') or ''
                candidate.display_order = candidate_order
                candidate.save(update_fields=['name', 'image_url', 'display_order'])
            kept_candidate_ids.add(candidate.id)

        position.candidates.exclude(id__in=kept_candidate_ids).delete()

    room.positions.exclude(id__in=kept_position_ids).delete()


@transaction.atomic
def create_room(data, user=None):
    """
    Create a room with its positions and candidates.
    New rooms always start as pending.
    """
    room = ElectionRoom(
        title=data['title'],
        description=data['description'],
        room_type=data.get('room_type', ElectionRoom.TYPE_VOTING),
        status=ElectionRoom.STATUS_PENDING,
        is_access_restricted=data.get('is_access_restricted', False),
        created_by=user,
    )
    if room.is_access_restricted:
        room.set_access_code(data.get('access_code'))
    room.set_deletion_password(data.get('deletion_password'))
    room.save()

    _sync_positions(room, data['positions'])

    logger.info(f"Room created: {room.id} - {room.title} ({room.room_type})")
    return get_room(room.id)


@transaction.atomic
def update_room(room, data):
    """
    Update room details, access settings, status and positions.
    An empty access code keeps the stored one.
    """
    room = ElectionRoom.objects.select_for_update().get(pk=room.pk)

    room.title = data.get('title', room.title)
    room.description = data.get('description', room.description)
    if 'status' in data and data['status']:
        room.status = data['status']

    if 'is_access_restricted' in data:
        room.is_access_restricted = data['is_access_restricted']
    if not room.is_access_restricted:
        room.access_code = ''
    elif data.get('access_code'):
        room.set_access_code(data['access_code'])
    elif not room.access_code:
        raise InvalidSubmissionError("Restricted rooms need an access code of at least 4 characters.")

    if data.get('deletion_password'):
        room.set_deletion_password(data['deletion_password'])

    room.save()

    if 'positions' in data:
        _sync_positions(room, data['positions'])

    logger.info(f"Room updated: {room.id} - {room.title} (status: {room.status})")
    return get_room(room.id)


@transaction.atomic
def delete_room(room, deletion_password=None):
    if not room.check_deletion_password(deletion_password):
        logger.warning(f"Rejected deletion of room {room.id}: wrong deletion password")
        raise InvalidDeletionPasswordError("The deletion password is incorrect.")

    room_id, title = room.id, room.title
    room.delete()
    logger.info(f"Room deleted: {room_id} - {title}")


def verify_room_access(room_id, access_code=None):
    """
    Check that a room can be joined with the given access code.

    Returns:
        ElectionRoom: the room, when access is granted
    """
    room = get_room(room_id)

    if not room.is_open():
        raise RoomNotOpenError(_not_open_message(room))

    if not room.check_access_code(access_code):
        logger.warning(f"Invalid access code for room {room.id}")
        raise AccessDeniedError("Invalid access code for this room.")

    return room


def _not_open_message(room):
    if room.status == ElectionRoom.STATUS_CLOSED:
        return "This room is closed."
    return "This room has not opened yet."


def _lock_open_room(room):
    """
    Re-read the room status under a row lock inside the current transaction.
    The room passed in may have been loaded before an admin closed it.
    """
    current = (
        ElectionRoom.objects.select_for_update()
        .filter(pk=room.pk)
        .values_list('status', flat=True)
        .first()
    )
    if current is None:
        raise RoomNotFoundError(f"No election room with id {room.pk}")

    room.status = current
    if not room.is_open():
        raise RoomNotOpenError(_not_open_message(room))
    return room


def save_candidate_image(upload):
    """
    Store an uploaded candidate picture in the default storage.

    Returns:
        tuple: (storage name, public URL)
    """
    filename = get_valid_filename(os.path.basename(upload.name or '')) or 'image'
    stamp = timezone.now().strftime('%Y%m%d%H%M%S')
    name = default_storage.save(f"{CANDIDATE_IMAGE_DIR}/{stamp}-{filename}", upload)

    logger.info(f"Candidate image stored: {name} ({upload.size} bytes)")
    return name, default_storage.url(name)


def room_share_link(room):
    """Public participation link for a room."""
    return f"{settings.FRONTEND_URL}/vote/{room.id}"


def qr_code_data_uri(url):
    """Render url as a PNG QR code and return it as a data URI."""
    img = qrcode.make(url)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    b64 = base64.b64encode(buf.getvalue()).decode('utf-8')
    return f"data:image/png;base64,{b64}"


# ==============================================================================
# VOTERS
# ==============================================================================

def _voter_lookup(room, email):
    return Voter.objects.filter(room=room, email_hash=hash_email(email))


def get_voter(room, email):
    return _voter_lookup(room, email).first()


def check_user_has_voted(room, email):
    return _voter_lookup(room, email).filter(status=Voter.STATUS_COMPLETED).exists()


def get_voters_for_room(room, status=None):
    """
    List voter records with decrypted emails, for admins only.
    """
    voters = Voter.objects.filter(room=room)
    if status:
        voters = voters.filter(status=status)

    return [
        {
            'email': voter.email,
            'status': voter.status,
            'invited_at': voter.invited_at,
            'entered_at': voter.entered_at,
            'completed_at': voter.completed_at,
        }
        for voter in voters
    ]


@transaction.atomic
def update_user_status(room, email, status):
    """
    Admin reset of a voter who has not submitted yet, e.g. one who lost
    the ballot page after entering. Only invited and waiting are valid
    targets; completed voters are final.
    """
    if status not in dict(Voter.STATUS_CHOICES):
        raise InvalidSubmissionError(f"Unknown voter status '{status}'.")
    if status not in RESETTABLE_STATUSES:
        raise InvalidSubmissionError("Voters can only be reset to invited or waiting.")

    voter = _voter_lookup(room, email).select_for_update().first()
    if voter is None:
        raise VoterNotFoundError("You are not on the voter list for this room.")
    if voter.has_completed:
        logger.warning(f"Refused status change of completed voter #{voter.id} in room {room.id}")
        raise InvalidSubmissionError("This voter has already submitted. Their status can no longer change.")

    voter.status = status
    voter.save(update_fields=['status'])
    return voter


def _send_invite_email(email, subject, body):
    try:
        send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [email], fail_silently=False)
        return True
    except Exception as e:
        logger.error(f"Failed to send invite email to {mask_email(email)}: {e}", exc_info=True)
        return False


def invite_voter(room, email):
    """
    Add a voter to the room's voter list and email them a personal link.

    Voters who already entered or completed the room keep their status;
    only the invitation timestamp is refreshed.

    Returns:
        InviteResult: link and email content, plus whether delivery succeeded
    """
    email = normalize_email(email)
    now = timezone.now()

    with transaction.atomic():
        voter = _voter_lookup(room, email).select_for_update().first()
        if voter is None:
            voter = Voter.objects.create(
                room=room,
                email_hash=hash_email(email),
                email_encrypted=encrypt_email(email),
                status=Voter.STATUS_INVITED,
                invited_at=now,
            )
        else:
            voter.invited_at = now
            voter.save(update_fields=['invited_at'])

    token = create_invite_token(email, room.id)
    invite_link = f"{settings.FRONTEND_URL}/vote/{room.id}/waiting?token={token}"

    context = {
        'room': room,
        'voter_email': email,
        'invite_link': invite_link,
        'expires_in_days': settings.INVITE_TOKEN_TTL_DAYS,
    }
    subject = render_to_string('voting/invite_email_subject.txt', context).strip()
    body = render_to_string('voting/invite_email_body.txt', context)

    sent = _send_invite_email(email, subject, body)

    logger.info(f"Invite generated for {mask_email(email)} in room {room.id} (sent: {sent})")
    return InviteResult(email=email, invite_link=invite_link, subject=subject, body=body, sent=sent)


def enter_waiting_room(room_id, token):
    """
    Validate an invite link and move the voter into the waiting room.

    Returns:
        dict: {'status': 'ready' | 'already_voted', 'email': str, 'room': ElectionRoom}
    """
    if not token:
        raise InvalidInviteError("Missing required information in the link.")

    try:
        claims = decode_invite_token(token)
    except jwt.InvalidTokenError:
        raise InvalidInviteError(
            "Your voting link is invalid or has expired. "
            "Please request a new one from the administrator."
        )

    if str(claims['room_id']) != str(room_id):
        raise InvalidInviteError("This invitation is not valid for this election.")

    room = get_room(room_id)
    email = claims['email']

    with transaction.atomic():
        voter = _voter_lookup(room, email).select_for_update().first()
        if voter is None:
            raise VoterNotFoundError("You are not on the approved voter list for this election.")

        if voter.has_completed:
            return {'status': 'already_voted', 'email': email, 'room': room}

        if not room.is_open():
            raise RoomNotOpenError(_not_open_message(room))

        if voter.status == Voter.STATUS_INVITED:
            voter.status = Voter.STATUS_WAITING
            voter.save(update_fields=['status'])

    logger.info(f"Voter {mask_email(email)} reached the waiting room of room {room.id}")
    return {'status': 'ready', 'email': email, 'room': room}


@transaction.atomic
def record_participant_entry(room, email, access_code=None):
    """
    Let a participant into the room exactly once.

    Invited voters enter without a code. Uninvited participants may enter
    unrestricted rooms, or restricted rooms with the right access code.
    """
    _lock_open_room(room)

    email = normalize_email(email)
    voter = _voter_lookup(room, email).select_for_update().first()

    if voter is not None:
        if voter.status == Voter.STATUS_COMPLETED:
            raise AlreadySubmittedError("You have already participated in this room.")
        if voter.status == Voter.STATUS_IN_ROOM:
            logger.warning(f"Second entry attempt by {mask_email(email)} in room {room.id}")
            raise AlreadyEnteredError(
                "You have already entered this room. Each participant can enter only once."
            )
    else:
        if not room.check_access_code(access_code):
            raise AccessDeniedError(
                "This room is restricted. You need an invitation or a valid access code."
            )
        try:
            with transaction.atomic():
                voter = Voter.objects.create(
                    room=room,
                    email_hash=hash_email(email),
                    email_encrypted=encrypt_email(email),
                    status=Voter.STATUS_INVITED,
                )
        except IntegrityError:
            raise AlreadyEnteredError(
                "You have already entered this room. Each participant can enter only once."
            )

    voter.status = Voter.STATUS_IN_ROOM
    voter.entered_at = timezone.now()
    voter.save(update_fields=['status', 'entered_at'])

    logger.info(f"Participant {mask_email(email)} entered room {room.id}")
    return voter


# ==============================================================================
# SUBMISSIONS
# ==============================================================================

def _lock_participant(room, email):
    """
    Lock the voter row for the rest of the transaction and check it may submit.
    """
    _lock_open_room(room)

    voter = _voter_lookup(room, email).select_for_update().first()

    if voter is None:
        raise VoterNotFoundError("You have not entered this room.")
    if voter.status == Voter.STATUS_COMPLETED:
        logger.warning(f"Participant {mask_email(email)} attempted to submit twice in room {room.id}")
        raise AlreadySubmittedError("You have already submitted in this room.")
    if voter.status != Voter.STATUS_IN_ROOM:
        raise AccessDeniedError("You must enter the room before submitting.")

    return voter


def _keyed_by_position(room, entries):
    """Map submitted position keys (str or int) onto the room's positions."""
    positions = {p.id: p for p in room.positions.all()}
    keyed = {}
    for key, value in entries.items():
        try:
            position_id = int(key)
        except (TypeError, ValueError):
            raise InvalidSubmissionError(f"Unknown position '{key}'.")
        if position_id not in positions:
            raise InvalidSubmissionError(f"Position {position_id} does not belong to this room.")
        keyed[position_id] = value
    return positions, keyed


def _complete(voter):
    voter.status = Voter.STATUS_COMPLETED
    voter.completed_at = timezone.now()
    voter.save(update_fields=['status', 'completed_at'])
    return voter.completed_at


@transaction.atomic
def submit_ballot(room, email, selections):
    """
    Record a ballot for a voting room.

    Args:
        room (ElectionRoom): the room, of type voting
        email (str): participant email, must have entered the room
        selections (dict): position id -> candidate id, or None to abstain
            on a single-candidate position

    Returns:
        SubmissionReceipt
    """
    if room.room_type != ElectionRoom.TYPE_VOTING:
        raise InvalidSubmissionError("This room collects reviews, not ballots.")

    voter = _lock_participant(room, email)
    positions, chosen = _keyed_by_position(room, selections)

    rows = []
    for position_id, position in positions.items():
        candidates = {c.id: c for c in position.candidates.all()}
        candidate_id = chosen.get(position_id)

        if candidate_id is None:
            if len(candidates) > 1:
                raise InvalidSubmissionError(f'Please select a candidate for "{position.title}".')
            continue

        candidate = candidates.get(candidate_id)
        if candidate is None:
            raise InvalidSubmissionError(
                f'Candidate {candidate_id} is not standing for "{position.title}".'
            )
        rows.append((position, candidate))

    session_hash = generate_session_hash()
    BallotSelection.objects.bulk_create([
        BallotSelection(room=room, position=position, candidate=candidate, session_hash=session_hash)
        for position, candidate in rows
    ])
    timestamp = _complete(voter)

    logger.info(f"Ballot recorded in room {room.id}: {len(rows)} selection(s)")
    return SubmissionReceipt(room_id=room.id, timestamp=timestamp, entries_recorded=len(rows))


def _valid_rating(rating):
    try:
        rating = Decimal(str(rating))
    except (ArithmeticError, ValueError, TypeError):
        return None
    if rating < MIN_RATING or rating > MAX_RATING:
        return None
    if (rating * 2) % 1 != 0:
        return None
    return rating


@transaction.atomic
def submit_review(room, email, reviews):
    """
    Record a review for every position of a review room.

    Args:
        reviews (dict): position id -> {'rating': number, 'feedback': str}
    """
    if room.room_type != ElectionRoom.TYPE_REVIEW:
        raise InvalidSubmissionError("This room collects ballots, not reviews.")

    voter = _lock_participant(room, email)
    positions, entries = _keyed_by_position(room, reviews)

    rows = []
    for position_id, position in positions.items():
        entry = entries.get(position_id)
        if not entry:
            raise InvalidSubmissionError(f'Please review "{position.title}".')

        rating = _valid_rating(entry.get('rating'))
        if rating is None:
            raise InvalidSubmissionError(
                f'Please provide a star rating between 0.5 and 5 for "{position.title}".'
            )

        feedback = (entry.get('feedback') or '').strip()
        if not feedback:
            raise InvalidSubmissionError(f'Please provide written feedback for "{position.title}".')

        rows.append(Review(room=room, position=position, rating=rating, feedback=feedback))

    session_hash = generate_session_hash()
    for row in rows:
        row.session_hash = session_hash
    Review.objects.bulk_create(rows)
    timestamp = _complete(voter)

    logger.info(f"Review recorded in room {room.id}: {len(rows)} position(s)")
    return SubmissionReceipt(room_id=room.id, timestamp=timestamp, entries_recorded=len(rows))


# ==============================================================================
# RESULTS
# ==============================================================================

def room_results(room):
    """
    Vote counts per position, sorted by votes, plus an overall leaderboard.
    Tied leaders are all marked as winners; nobody wins with zero votes.
    """
    counted = (
        Candidate.objects.filter(position__room=room)
        .annotate(vote_count=Count('selections'))
        .select_related('position')
    )
    by_position = {}
    for candidate in counted:
        by_position.setdefault(candidate.position_id, []).append(candidate)

    positions = []
    leaderboard = []
    for position in room.positions.all():
        candidates = sorted(
            by_position.get(position.id, []),
            key=lambda c: (-c.vote_count, c.display_order, c.id)
        )
        total_votes = sum(c.vote_count for c in candidates)
        max_votes = candidates[0].vote_count if candidates else 0

        rows = []
        for rank, candidate in enumerate(candidates, start=1):
            percentage = (candidate.vote_count / total_votes * 100) if total_votes > 0 else 0
            rows.append({
                'candidate_id': candidate.id,
                'name': candidate.name,
                'image_url': candidate.image_url,
                'vote_count': candidate.vote_count,
                'percentage': round(percentage, 2),
                'rank': rank,
                'is_winner': max_votes > 0 and candidate.vote_count == max_votes,
            })
            leaderboard.append({
                'candidate_id': candidate.id,
                'name': candidate.name,
                'position_title': position.title,
                'vote_count': candidate.vote_count,
            })

        positions.append({
            'position_id': position.id,
            'title': position.title,
            'total_votes': total_votes,
            'candidates': rows,
        })

    leaderboard.sort(key=lambda row: -row['vote_count'])
    for rank, row in enumerate(leaderboard, start=1):
        row['rank'] = rank

    return {
        'room_id': room.id,
        'title': room.title,
        'room_type': room.room_type,
        'status': room.status,
        'is_final': room.status == ElectionRoom.STATUS_CLOSED,
        'total_ballots': room.voters.filter(status=Voter.STATUS_COMPLETED).count(),
        'positions': positions,
        'leaderboard': leaderboard,
    }


def _star_bucket(rating):
    return max(1, int(Decimal(rating).quantize(Decimal('1'), rounding=ROUND_HALF_UP)))


def review_results(room):
    """
    Average rating, star distribution and anonymous feedback per position.
    """
    reviews_by_position = {}
    for review in Review.objects.filter(room=room).order_by('-reviewed_at', '-id'):
        reviews_by_position.setdefault(review.position_id, []).append(review)

    positions = []
    for position in room.positions.all():
        reviews = reviews_by_position.get(position.id, [])
        candidate = next(iter(position.candidates.all()), None)

        distribution = {stars: 0 for stars in STAR_LEVELS}
        for review in reviews:
            distribution[_star_bucket(review.rating)] += 1

        average = None
        if reviews:
            average = round(float(sum(r.rating for r in reviews) / len(reviews)), 2)

        positions.append({
            'position_id': position.id,
            'title': position.title,
            'candidate_name': candidate.name if candidate else None,
            'review_count': len(reviews),
            'average_rating': average,
            'rating_distribution': [
                {
                    'stars': stars,
                    'name': f"{stars} Star" if stars == 1 else f"{stars} Stars",
                    'count': distribution[stars],
                }
                for stars in STAR_LEVELS
            ],
            'reviews': [
                {
                    'rating': float(review.rating),
                    'feedback': review.feedback,
                    'reviewed_at': review.reviewed_at,
                }
                for review in reviews
            ],
        })

    return {
        'room_id': room.id,
        'title': room.title,
        'room_type': room.room_type,
        'status': room.status,
        'is_final': room.status == ElectionRoom.STATUS_CLOSED,
        'total_reviewers': room.voters.filter(status=Voter.STATUS_COMPLETED).count(),
        'positions': positions,
    }


def get_results(room):
    if room.is_review:
        return review_results(room)
    return room_results(room)


def export_results_csv(room):
    """
    Results as CSV text, one row per candidate (voting) or position (review).
    """
    buf = io.StringIO()
    writer = csv.writer(buf)

    if room.is_review:
        results = review_results(room)
        writer.writerow(['Position', 'Candidate', 'Reviews', 'Average Rating'])
        for position in results['positions']:
            average = position['average_rating']
            writer.writerow([
                position['title'],
                position['candidate_name'] or '',
                position['review_count'],
                f"{average:.2f}" if average is not None else 'N/A',
            ])
    else:
        results = room_results(room)
        writer.writerow(['Position', 'Rank', 'Candidate', 'Votes', 'Winner'])
        for position in results['positions']:
            for candidate in position['candidates']:
                writer.writerow([
                    position['title'],
                    candidate['rank'],
                    candidate['name'],
                    candidate['vote_count'],
                    'Yes' if candidate['is_winner'] else '',
                ])

    return buf.getvalue()
