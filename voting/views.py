"""
Voting views - room administration, participation, results
"""
from django.http import HttpResponse
from rest_framework import status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView
import logging

from authentication.crypto_utils import mask_email

from . import services
from .models import Voter
from .serializers import (
    BallotSubmissionSerializer,
    CandidateImageUploadSerializer,
    ElectionRoomSerializer,
    ElectionRoomWriteSerializer,
    InviteSerializer,
    ParticipantEntrySerializer,
    PublicRoomSerializer,
    ReviewSubmissionSerializer,
    RoomAccessSerializer,
    RoomDeleteSerializer,
    VoterSerializer,
    VoterStatusQuerySerializer,
    VoterStatusUpdateSerializer,
)

logger = logging.getLogger(__name__)


def _error_response(exc):
    """Translate a service error into the API error format."""
    return Response({
        'error': exc.error,
        'detail': str(exc)
    }, status=exc.status_code)


def _invalid_response(error, serializer):
    return Response({
        'error': error,
        'detail': serializer.errors
    }, status=status.HTTP_400_BAD_REQUEST)


def _server_error(message, exc):
    return Response({
        'error': message,
        'detail': str(exc)
    }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


# ==============================================================================
# ADMIN: ROOMS
# ==============================================================================

class RoomListCreateView(APIView):
    """
    List all rooms or create a new one.

    GET  /api/admin/rooms/
    POST /api/admin/rooms/
    """
    permission_classes = [IsAdminUser]

    def get(self, request):
        try:
            rooms = services.list_rooms()
            serializer = ElectionRoomSerializer(rooms, many=True)
            return Response({
                'count': len(rooms),
                'rooms': serializer.data
            })
        except Exception as e:
            logger.error(f"Error listing rooms: {e}", exc_info=True)
            return _server_error('Failed to retrieve rooms', e)

    def post(self, request):
        serializer = ElectionRoomWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid room data', serializer)

        try:
            room = services.create_room(serializer.validated_data, user=request.user)
            return Response(ElectionRoomSerializer(room).data, status=status.HTTP_201_CREATED)
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error creating room: {e}", exc_info=True)
            return _server_error('Failed to create room', e)


class RoomDetailView(APIView):
    """
    Retrieve, edit or delete a room.

    DELETE body:
        deletion_password (optional): required when the room has one
    """
    permission_classes = [IsAdminUser]

    def get(self, request, room_id):
        try:
            room = services.get_room(room_id)
            return Response(ElectionRoomSerializer(room).data)
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error retrieving room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to retrieve room', e)

    def put(self, request, room_id):
        try:
            room = services.get_room(room_id)

            serializer = ElectionRoomWriteSerializer(data=request.data, context={'room': room})
            if not serializer.is_valid():
                return _invalid_response('Invalid room data', serializer)

            room = services.update_room(room, serializer.validated_data)
            return Response(ElectionRoomSerializer(room).data)
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error updating room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to update room', e)

    def delete(self, request, room_id):
        try:
            room = services.get_room(room_id)

            serializer = RoomDeleteSerializer(data=request.data)
            password = serializer.validated_data['deletion_password'] if serializer.is_valid() else None

            services.delete_room(room, password)
            return Response(status=status.HTTP_204_NO_CONTENT)
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error deleting room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to delete room', e)


class RoomVotersView(APIView):
    """
    Voter list for a room, with decrypted emails.

    Query params:
        status (optional): invited | waiting | in_room | completed
    """
    permission_classes = [IsAdminUser]

    def get(self, request, room_id):
        try:
            room = services.get_room(room_id)

            status_filter = request.GET.get('status')
            if status_filter and status_filter not in dict(Voter.STATUS_CHOICES):
                return Response({
                    'error': 'Invalid status filter',
                    'detail': f"Unknown voter status '{status_filter}'"
                }, status=status.HTTP_400_BAD_REQUEST)

            voters = services.get_voters_for_room(room, status=status_filter)
            return Response({
                'room_id': room.id,
                'title': room.title,
                'count': len(voters),
                'voters': VoterSerializer(voters, many=True).data
            })
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error listing voters for room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to load voter data', e)

    def patch(self, request, room_id):
        """
        Change one voter's status, e.g. to let a locked participant back in.
        """
        serializer = VoterStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid voter data', serializer)

        try:
            room = services.get_room(room_id)
            voter = services.update_user_status(
                room,
                serializer.validated_data['email'],
                serializer.validated_data['status']
            )
            logger.info(f"Voter #{voter.id} in room {room.id} set to {voter.status} by {request.user}")
            return Response({
                'success': True,
                'email': voter.email,
                'status': voter.status,
            })
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error updating voter in room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to update voter', e)


class InviteVotersView(APIView):
    """
    Invite voters by email. Each gets a personal, expiring waiting-room link.

    Request body:
    - email: str, or
    - emails: list of str
    """
    permission_classes = [IsAdminUser]

    def post(self, request, room_id):
        try:
            room = services.get_room(room_id)

            serializer = InviteSerializer(data=request.data)
            if not serializer.is_valid():
                return _invalid_response('Invalid invitation data', serializer)

            results = [services.invite_voter(room, email) for email in serializer.validated_data['emails']]
            sent = sum(1 for result in results if result.sent)

            return Response({
                'success': sent == len(results),
                'message': f"Generated {len(results)} invitation(s), {sent} email(s) sent.",
                'invitations': [
                    {
                        'email': result.email,
                        'invite_link': result.invite_link,
                        'sent': result.sent,
                        'email_content': {
                            'subject': result.subject,
                            'body': result.body,
                        },
                    }
                    for result in results
                ]
            }, status=status.HTTP_201_CREATED)
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error inviting voters to room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to process invitations', e)


class RoomShareView(APIView):
    """
    Public participation link for a room, with a QR code image.
    """
    permission_classes = [IsAdminUser]

    def get(self, request, room_id):
        try:
            room = services.get_room(room_id)
            link = services.room_share_link(room)
            return Response({
                'share_link': link,
                'qr_code': services.qr_code_data_uri(link),
            })
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error building share link for room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to build share link', e)


class RoomResultsView(APIView):
    """
    Aggregated results: vote counts for voting rooms,
    ratings and feedback for review rooms.
    """
    permission_classes = [IsAdminUser]

    def get(self, request, room_id):
        try:
            room = services.get_room(room_id)
            return Response(services.get_results(room))
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error computing results for room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to load results', e)


class RoomResultsExportView(APIView):
    """
    Results table as a CSV download.
    """
    permission_classes = [IsAdminUser]

    def get(self, request, room_id):
        try:
            room = services.get_room(room_id)
            response = HttpResponse(services.export_results_csv(room), content_type='text/csv')
            response['Content-Disposition'] = f'attachment; filename="room-{room.id}-results.csv"'
            return response
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error exporting results for room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to export results', e)


class CandidateImageUploadView(APIView):
    """
    Upload a candidate picture before saving the room form.

    Multipart body:
    - image: image file

    Returns the public URL to put in the candidate's image_url.
    """
    permission_classes = [IsAdminUser]
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request):
        serializer = CandidateImageUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid image', serializer)

        try:
            name, url = services.save_candidate_image(serializer.validated_data['image'])
            return Response({
                'success': True,
                'message': 'Candidate image successfully uploaded.',
                'path': name,
                'image_url': request.build_absolute_uri(url),
            }, status=status.HTTP_201_CREATED)
        except Exception as e:
            logger.error(f"Candidate image upload failed: {e}", exc_info=True)
            return _server_error('Could not upload candidate image', e)


# ==============================================================================
# PARTICIPANTS
# ==============================================================================

class RoomAccessView(APIView):
    """
    Verify a room id and access code before a participant enters.

    Request body:
    - room_id: int
    - access_code: str (restricted rooms only)
    """

    def post(self, request):
        serializer = RoomAccessSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid access data', serializer)

        try:
            room = services.verify_room_access(
                serializer.validated_data['room_id'],
                serializer.validated_data.get('access_code')
            )
            return Response({
                'success': True,
                'message': 'Access granted',
                'room_id': room.id,
                'room_type': room.room_type,
            })
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error verifying room access: {e}", exc_info=True)
            return _server_error('Failed to verify access', e)


class PublicRoomView(APIView):
    """
    Ballot definition of an active room. No counts are exposed.
    """

    def get(self, request, room_id):
        try:
            room = services.get_room(room_id)

            if not room.is_open():
                return Response({
                    'error': 'Room not open',
                    'detail': f'This room is currently {room.status} and not open for participation.',
                    'status': room.status,
                }, status=status.HTTP_400_BAD_REQUEST)

            return Response(PublicRoomSerializer(room).data)
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error retrieving public room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to retrieve room', e)


class WaitingRoomView(APIView):
    """
    Landing point of an invite link.

    Query params:
        token (required): invite token from the email
    """

    def get(self, request, room_id):
        try:
            outcome = services.enter_waiting_room(room_id, request.GET.get('token'))
            room = outcome['room']

            return Response({
                'status': outcome['status'],
                'email': outcome['email'],
                'room': {
                    'id': room.id,
                    'title': room.title,
                    'room_type': room.room_type,
                },
            })
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Waiting room error for room {room_id}: {e}", exc_info=True)
            return _server_error('An unexpected error occurred', e)


class ParticipantEntryView(APIView):
    """
    Enter a room after accepting the guidelines. Allowed once per email.

    Request body:
    - email: str
    - rules_acknowledged: bool (must be true)
    - access_code: str (uninvited participants of restricted rooms)
    """

    def post(self, request, room_id):
        serializer = ParticipantEntrySerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid entry data', serializer)

        try:
            room = services.get_room(room_id)
            voter = services.record_participant_entry(
                room,
                serializer.validated_data['email'],
                access_code=serializer.validated_data.get('access_code')
            )
            return Response({
                'success': True,
                'message': 'Entry recorded',
                'status': voter.status,
                'entered_at': voter.entered_at,
            })
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error recording entry in room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to enter room', e)


class BallotSubmitView(APIView):
    """
    Submit a ballot for a voting room.

    Request body:
    - email: str
    - selections: {position_id: candidate_id | null}

    Records the selections anonymously and marks the voter completed,
    all in one transaction.
    """

    def post(self, request, room_id):
        serializer = BallotSubmissionSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid ballot data', serializer)

        email = serializer.validated_data['email']
        try:
            room = services.get_room(room_id)
            receipt = services.submit_ballot(room, email, serializer.validated_data['selections'])

            return Response({
                'success': True,
                'message': 'Ballot recorded successfully',
                'timestamp': receipt.timestamp,
                'room_id': receipt.room_id,
                'selections_recorded': receipt.entries_recorded,
            }, status=status.HTTP_201_CREATED)
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error submitting ballot for {mask_email(email)} in room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to submit ballot', e)


class ReviewSubmitView(APIView):
    """
    Submit reviews for a review room.

    Request body:
    - email: str
    - reviews: {position_id: {rating: number, feedback: str}}
    """

    def post(self, request, room_id):
        serializer = ReviewSubmissionSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_response('Invalid review data', serializer)

        email = serializer.validated_data['email']
        try:
            room = services.get_room(room_id)
            receipt = services.submit_review(room, email, serializer.validated_data['reviews'])

            return Response({
                'success': True,
                'message': 'Review recorded successfully',
                'timestamp': receipt.timestamp,
                'room_id': receipt.room_id,
                'reviews_recorded': receipt.entries_recorded,
            }, status=status.HTTP_201_CREATED)
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error submitting review for {mask_email(email)} in room {room_id}: {e}", exc_info=True)
            return _server_error('Failed to submit review', e)


class VoterStatusView(APIView):
    """
    Whether an email has already participated in a room.

    Query params:
        email (required)
    """

    def get(self, request, room_id):
        serializer = VoterStatusQuerySerializer(data=request.GET)
        if not serializer.is_valid():
            return _invalid_response('Invalid query', serializer)

        try:
            room = services.get_room(room_id)
            voter = services.get_voter(room, serializer.validated_data['email'])
            return Response({
                'room_id': room.id,
                'has_voted': bool(voter and voter.has_completed),
                'status': voter.status if voter else None,
            })
        except services.RoomError as e:
            return _error_response(e)
        except Exception as e:
            logger.error(f"Error checking voter status in room {room_id}: {e}", exc_info=True)
            return _server_error('Could not verify voting status', e)
