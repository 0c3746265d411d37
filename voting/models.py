from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from decimal import Decimal

from authentication.crypto_utils import decrypt_email


class ElectionRoom(models.Model):
    """
    Represents one election or review campaign.
    Contains positions, each with one or more candidates.
    """
    TYPE_VOTING = 'voting'
    TYPE_REVIEW = 'review'
    TYPE_CHOICES = [
        (TYPE_VOTING, 'Voting'),
        (TYPE_REVIEW, 'Review'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_ACTIVE = 'active'
    STATUS_CLOSED = 'closed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_CLOSED, 'Closed'),
    ]

    title = models.CharField(max_length=255, verbose_name="Title")
    description = models.TextField(verbose_name="Description")
    room_type = models.CharField(
        max_length=20,
        choices=TYPE_CHOICES,
        default=TYPE_VOTING,
        verbose_name="Room Type"
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        verbose_name="Status",
        help_text="Only active rooms accept participants"
    )
    is_access_restricted = models.BooleanField(
        default=False,
        verbose_name="Access Restricted",
        help_text="If True, uninvited participants need the access code"
    )
    access_code = models.CharField(
        max_length=128,
        blank=True,
        default='',
        verbose_name="Access Code (hashed)"
    )
    deletion_password = models.CharField(
        max_length=128,
        blank=True,
        default='',
        verbose_name="Deletion Password (hashed)"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='election_rooms',
        verbose_name="Created By"
    )
    created_at = models.DateTimeField(auto_now_add=True, verbose_name="Created At")
    updated_at = models.DateTimeField(auto_now=True, verbose_name="Updated At")

    class Meta:
        verbose_name = "Election Room"
        verbose_name_plural = "Election Rooms"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} ({self.get_room_type_display()})"

    @property
    def is_review(self):
        return self.room_type == self.TYPE_REVIEW

    def is_open(self):
        """Check if the room currently accepts participants"""
        return self.status == self.STATUS_ACTIVE

    def set_access_code(self, raw_code):
        self.access_code = make_password(raw_code) if raw_code else ''

    def check_access_code(self, raw_code):
        if not self.is_access_restricted:
            return True
        if not raw_code or not self.access_code:
            return False
        return check_password(raw_code, self.access_code)

    def set_deletion_password(self, raw_password):
        self.deletion_password = make_password(raw_password) if raw_password else ''

    def check_deletion_password(self, raw_password):
        """Rooms without a deletion password can be deleted by any admin"""
        if not self.deletion_password:
            return True
        if not raw_password:
            return False
        return check_password(raw_password, self.deletion_password)

    def clean(self):
        if self.is_access_restricted and not self.access_code:
            raise ValidationError("Restricted rooms need an access code")


class Position(models.Model):
    """
    A role being voted on or reviewed, e.g. "President".
    """
    room = models.ForeignKey(
        ElectionRoom,
        on_delete=models.CASCADE,
        related_name='positions',
        verbose_name="Election Room"
    )
    title = models.CharField(max_length=255, verbose_name="Title")
    display_order = models.IntegerField(
        default=0,
        verbose_name="Display Order",
        help_text="Lower values are shown first on the ballot"
    )

    class Meta:
        verbose_name = "Position"
        verbose_name_plural = "Positions"
        ordering = ['room', 'display_order', 'id']

    def __str__(self):
        return f"{self.title} - {self.room.title}"


class Candidate(models.Model):
    """
    A candidate standing for a position.
    """
    position = models.ForeignKey(
        Position,
        on_delete=models.CASCADE,
        related_name='candidates',
        verbose_name="Position"
    )
    name = models.CharField(max_length=255, verbose_name="Name")
    image_url = models.URLField(
        max_length=500,
        blank=True,
        default='',
        verbose_name="Image URL"
    )
    display_order = models.IntegerField(default=0, verbose_name="Display Order")

    class Meta:
        verbose_name = "Candidate"
        verbose_name_plural = "Candidates"
        ordering = ['position', 'display_order', 'id']

    def __str__(self):
        return f"{self.name} - {self.position.title}"

    def get_vote_count(self):
        """Get number of ballots that selected this candidate"""
        return self.selections.count()


class Voter(models.Model):
    """
    Per-room, per-email record tracking invitation and participation.
    The email is kept hashed for lookups and encrypted for admin display.
    Never linked to ballot selections or reviews.
    """
    STATUS_INVITED = 'invited'
    STATUS_WAITING = 'waiting'
    STATUS_IN_ROOM = 'in_room'
    STATUS_COMPLETED = 'completed'
    STATUS_CHOICES = [
        (STATUS_INVITED, 'Invited'),
        (STATUS_WAITING, 'Waiting'),
        (STATUS_IN_ROOM, 'In Room'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    room = models.ForeignKey(
        ElectionRoom,
        on_delete=models.CASCADE,
        related_name='voters',
        verbose_name="Election Room"
    )
    email_hash = models.CharField(
        max_length=64,
        db_index=True,
        verbose_name="Email Hash",
        help_text="SHA-256 hash of the normalized email"
    )
    email_encrypted = models.TextField(verbose_name="Encrypted Email")
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_INVITED,
        verbose_name="Status"
    )
    invited_at = models.DateTimeField(null=True, blank=True, verbose_name="Invited At")
    entered_at = models.DateTimeField(null=True, blank=True, verbose_name="Entered At")
    completed_at = models.DateTimeField(null=True, blank=True, verbose_name="Completed At")

    class Meta:
        verbose_name = "Voter"
        verbose_name_plural = "Voters"
        ordering = ['-completed_at', '-invited_at', 'id']
        unique_together = ('room', 'email_hash')
        indexes = [
            models.Index(fields=['room', 'status'], name='voting_vote_room_id_5b0c1e_idx'),
        ]

    def __str__(self):
        # Personal data stays out of the admin list
        return f"Voter #{self.id} - {self.room.title}"

    @property
    def email(self):
        return decrypt_email(self.email_encrypted)

    @property
    def has_completed(self):
        return self.status == self.STATUS_COMPLETED


class BallotSelection(models.Model):
    """
    One anonymous candidate choice from a submitted ballot.
    CRITICAL: NO link to the voter.
    """
    room = models.ForeignKey(
        ElectionRoom,
        on_delete=models.CASCADE,
        related_name='selections',
        verbose_name="Election Room"
    )
    position = models.ForeignKey(
        Position,
        on_delete=models.CASCADE,
        related_name='selections',
        verbose_name="Position"
    )
    candidate = models.ForeignKey(
        Candidate,
        on_delete=models.CASCADE,
        related_name='selections',
        verbose_name="Candidate"
    )
    timestamp = models.DateTimeField(auto_now_add=True, verbose_name="Timestamp")
    session_hash = models.CharField(
        max_length=64,
        verbose_name="Session Hash",
        help_text="Random hash shared by the selections of one ballot"
    )

    class Meta:
        verbose_name = "Ballot Selection"
        verbose_name_plural = "Ballot Selections"
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['room'], name='voting_ball_room_id_8d2f4a_idx'),
            models.Index(fields=['candidate'], name='voting_ball_candida_3e7b91_idx'),
        ]

    def __str__(self):
        return f"Vote for {self.candidate.name} in {self.room.title}"


class Review(models.Model):
    """
    Anonymous star rating and feedback for a single-candidate position.
    """
    room = models.ForeignKey(
        ElectionRoom,
        on_delete=models.CASCADE,
        related_name='reviews',
        verbose_name="Election Room"
    )
    position = models.ForeignKey(
        Position,
        on_delete=models.CASCADE,
        related_name='reviews',
        verbose_name="Position"
    )
    rating = models.DecimalField(
        max_digits=2,
        decimal_places=1,
        validators=[MinValueValidator(Decimal('0.5')), MaxValueValidator(Decimal('5.0'))],
        verbose_name="Rating"
    )
    feedback = models.TextField(verbose_name="Feedback")
    reviewed_at = models.DateTimeField(auto_now_add=True, verbose_name="Reviewed At")
    session_hash = models.CharField(max_length=64, verbose_name="Session Hash")

    class Meta:
        verbose_name = "Review"
        verbose_name_plural = "Reviews"
        ordering = ['-reviewed_at', '-id']
        indexes = [
            models.Index(fields=['position'], name='voting_revi_positio_a41c2d_idx'),
        ]

    def __str__(self):
        return f"{self.rating}/5 for {self.position.title}"
