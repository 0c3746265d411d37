"""
Django REST Framework serializers for voting app.

These serializers handle JSON serialization/deserialization for:
- Election rooms, positions and candidates (admin forms and public ballot)
- Room access, participant entry, invitations
- Ballot and review submission
"""

from django.conf import settings
from django.template.defaultfilters import filesizeformat
from rest_framework import serializers

from authentication.crypto_utils import normalize_email

from .models import ElectionRoom, Position, Candidate, Voter
from .services import room_share_link


# ==============================================================================
# READ SERIALIZERS
# ==============================================================================

class CandidateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Candidate
        fields = ['id', 'name', 'image_url', 'display_order']


class PositionSerializer(serializers.ModelSerializer):
    candidates = CandidateSerializer(many=True, read_only=True)

    class Meta:
        model = Position
        fields = ['id', 'title', 'display_order', 'candidates']


class ElectionRoomSerializer(serializers.ModelSerializer):
    """
    Admin view of a room.
    Secrets (access code, deletion password) are never returned.
    """
    positions = PositionSerializer(many=True, read_only=True)
    has_deletion_password = serializers.SerializerMethodField()
    share_link = serializers.SerializerMethodField()
    participant_counts = serializers.SerializerMethodField()

    class Meta:
        model = ElectionRoom
        fields = [
            'id',
            'title',
            'description',
            'room_type',
            'status',
            'is_access_restricted',
            'has_deletion_password',
            'positions',
            'participant_counts',
            'share_link',
            'created_at',
            'updated_at',
        ]

    def get_has_deletion_password(self, obj):
        return bool(obj.deletion_password)

    def get_share_link(self, obj):
        return room_share_link(obj)

    def get_participant_counts(self, obj):
        """Number of voter records per status."""
        counts = {status: 0 for status, _ in Voter.STATUS_CHOICES}
        for status in obj.voters.values_list('status', flat=True):
            counts[status] += 1
        return counts


class PublicRoomSerializer(serializers.ModelSerializer):
    """
    Ballot definition shown to participants. No counts, no secrets.
    """
    positions = PositionSerializer(many=True, read_only=True)

    class Meta:
        model = ElectionRoom
        fields = [
            'id',
            'title',
            'description',
            'room_type',
            'status',
            'is_access_restricted',
            'positions',
        ]


class VoterSerializer(serializers.Serializer):
    """Decrypted voter record. Admin only."""
    email = serializers.EmailField()
    status = serializers.CharField()
    invited_at = serializers.DateTimeField(allow_null=True)
    entered_at = serializers.DateTimeField(allow_null=True)
    completed_at = serializers.DateTimeField(allow_null=True)


# ==============================================================================
# ROOM FORMS
# ==============================================================================

class CandidateInputSerializer(serializers.Serializer):
    id = serializers.IntegerField(required=False, allow_null=True)
    name = serializers.CharField(
        max_length=255,
        error_messages={'blank': 'Candidate name is required.'}
    )
    image_url = serializers.URLField(
        max_length=500,
        required=False,
        allow_blank=True,
        default='',
        error_messages={'invalid': 'Image URL must be a valid URL.'}
    )


class PositionInputSerializer(serializers.Serializer):
    id = serializers.IntegerField(required=False, allow_null=True)
    title = serializers.CharField(
        max_length=255,
        error_messages={'blank': 'Position title is required.'}
    )
    candidates = serializers.ListField(
        child=CandidateInputSerializer(),
        min_length=1,
        error_messages={'min_length': 'At least one candidate is required for a position.'}
    )


class ElectionRoomWriteSerializer(serializers.Serializer):
    """
    Create/edit form for voting and review rooms.

    Pass context={'room': room} when editing: the status may then change,
    and a restricted room may keep its stored access code.
    """
    title = serializers.CharField(
        min_length=3,
        max_length=255,
        error_messages={'min_length': 'Title must be at least 3 characters.'}
    )
    description = serializers.CharField(
        min_length=10,
        error_messages={'min_length': 'Description must be at least 10 characters.'}
    )
    room_type = serializers.ChoiceField(choices=ElectionRoom.TYPE_CHOICES, required=False)
    status = serializers.ChoiceField(choices=ElectionRoom.STATUS_CHOICES, required=False)
    is_access_restricted = serializers.BooleanField(default=False)
    access_code = serializers.CharField(required=False, allow_blank=True, default='')
    deletion_password = serializers.CharField(required=False, allow_blank=True, default='')
    positions = serializers.ListField(
        child=PositionInputSerializer(),
        min_length=1,
        error_messages={'min_length': 'At least one position is required.'}
    )

    def validate(self, data):
        room = self.context.get('room')

        if room is None:
            data.pop('status', None)
            data.setdefault('room_type', ElectionRoom.TYPE_VOTING)
        else:
            if data.get('room_type', room.room_type) != room.room_type:
                raise serializers.ValidationError({
                    'room_type': 'The type of an existing room cannot be changed.'
                })
            data['room_type'] = room.room_type

        access_code = data.get('access_code') or ''
        if data.get('is_access_restricted'):
            keeps_stored_code = room is not None and room.access_code and not access_code
            if not keeps_stored_code and len(access_code) < 4:
                raise serializers.ValidationError({
                    'access_code': 'Access code must be at least 4 characters if access is restricted.'
                })

        if data.get('room_type') == ElectionRoom.TYPE_REVIEW:
            for position in data['positions']:
                if len(position['candidates']) != 1:
                    raise serializers.ValidationError({
                        'positions': f'Review position "{position["title"]}" must have exactly one candidate.'
                    })

        return data


class RoomDeleteSerializer(serializers.Serializer):
    deletion_password = serializers.CharField(required=False, allow_blank=True, default='')


class InviteSerializer(serializers.Serializer):
    """
    Invite one voter (email) or several (emails).
    """
    email = serializers.EmailField(required=False)
    emails = serializers.ListField(child=serializers.EmailField(), required=False)

    def validate(self, data):
        emails = list(data.get('emails') or [])
        if data.get('email'):
            emails.insert(0, data['email'])

        unique = []
        for email in emails:
            email = normalize_email(email)
            if email not in unique:
                unique.append(email)

        if not unique:
            raise serializers.ValidationError({'email': 'At least one email address is required.'})

        return {'emails': unique}


# ==============================================================================
# PARTICIPANT FORMS
# ==============================================================================

class RoomAccessSerializer(serializers.Serializer):
    room_id = serializers.IntegerField()
    access_code = serializers.CharField(required=False, allow_blank=True, default='')


class ParticipantEntrySerializer(serializers.Serializer):
    email = serializers.EmailField(error_messages={'invalid': 'Please enter a valid email address.'})
    access_code = serializers.CharField(required=False, allow_blank=True, default='')
    rules_acknowledged = serializers.BooleanField()

    def validate_rules_acknowledged(self, value):
        if not value:
            raise serializers.ValidationError("Please confirm you have read and understood the rules.")
        return value


class BallotSubmissionSerializer(serializers.Serializer):
    """
    selections maps position id -> candidate id.
    null abstains on a single-candidate position.
    """
    email = serializers.EmailField()
    selections = serializers.DictField(child=serializers.IntegerField(allow_null=True))


class ReviewEntrySerializer(serializers.Serializer):
    rating = serializers.DecimalField(max_digits=3, decimal_places=1)
    feedback = serializers.CharField(required=False, allow_blank=True, default='')


class ReviewSubmissionSerializer(serializers.Serializer):
    email = serializers.EmailField()
    reviews = serializers.DictField(child=ReviewEntrySerializer())


class VoterStatusQuerySerializer(serializers.Serializer):
    email = serializers.EmailField()


class VoterStatusUpdateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    status = serializers.ChoiceField(choices=Voter.STATUS_CHOICES)


class CandidateImageUploadSerializer(serializers.Serializer):
    """
    Candidate picture upload. The returned URL goes into a candidate's image_url.
    """
    image = serializers.ImageField(
        error_messages={'invalid_image': 'Please upload a valid image file.'}
    )

    def validate_image(self, value):
        max_bytes = settings.CANDIDATE_IMAGE_MAX_BYTES
        if value.size > max_bytes:
            raise serializers.ValidationError(
                f"Image must not be larger than {filesizeformat(max_bytes)}."
            )
        return value
