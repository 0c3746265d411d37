"""
Admin configuration for voting app
"""
from django.contrib import admin
from django.utils.html import format_html
from .models import ElectionRoom, Position, Candidate, Voter, BallotSelection, Review


class PositionInline(admin.TabularInline):
    """
    Inline admin for Positions within ElectionRoom
    """
    model = Position
    extra = 1
    fields = ('title', 'display_order')
    ordering = ('display_order',)


class CandidateInline(admin.TabularInline):
    model = Candidate
    extra = 2
    fields = ('name', 'image_url', 'display_order')
    ordering = ('display_order',)


@admin.register(ElectionRoom)
class ElectionRoomAdmin(admin.ModelAdmin):
    """
    Admin interface for ElectionRoom model
    """
    list_display = (
        'title',
        'room_type',
        'status_badge',
        'is_access_restricted',
        'total_participants',
        'created_at'
    )
    list_filter = ('room_type', 'status', 'is_access_restricted', 'created_at')
    search_fields = ('title', 'description')
    ordering = ('-created_at',)

    fieldsets = (
        ('Main Information', {
            'fields': ('title', 'description', 'room_type', 'status')
        }),
        ('Access', {
            'fields': ('is_access_restricted',),
            'description': 'Access codes and deletion passwords are set through the API'
        }),
        ('Metadata', {
            'fields': ('created_by', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ('created_by', 'created_at', 'updated_at')
    inlines = [PositionInline]

    def status_badge(self, obj):
        """Show the room status with a color"""
        if obj.status == ElectionRoom.STATUS_ACTIVE:
            return format_html('<span style="color: green;">● Active</span>')
        elif obj.status == ElectionRoom.STATUS_PENDING:
            return format_html('<span style="color: orange;">● Pending</span>')
        else:
            return format_html('<span style="color: red;">● Closed</span>')
    status_badge.short_description = "Status"

    def total_participants(self, obj):
        """Count how many people completed the room"""
        return obj.voters.filter(status=Voter.STATUS_COMPLETED).count()
    total_participants.short_description = "Completed"


@admin.register(Position)
class PositionAdmin(admin.ModelAdmin):
    list_display = ('title', 'room', 'display_order')
    list_filter = ('room',)
    search_fields = ('title', 'room__title')
    ordering = ('room', 'display_order')
    inlines = [CandidateInline]


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    """
    Admin interface for Candidate model
    """
    list_display = ('name', 'position', 'display_order', 'vote_count')
    list_filter = ('position__room',)
    search_fields = ('name', 'position__title')
    ordering = ('position', 'display_order')

    def vote_count(self, obj):
        """Show number of votes for this candidate"""
        count = obj.get_vote_count()
        return format_html('<strong>{}</strong>', count)
    vote_count.short_description = "Votes"


@admin.register(Voter)
class VoterAdmin(admin.ModelAdmin):
    """
    Admin interface for Voter model
    NOTE: Emails are encrypted, the list shows hashes and status only
    """
    list_display = ('id', 'room', 'email_hash_short', 'status', 'invited_at', 'completed_at')
    list_filter = ('room', 'status')
    search_fields = ('email_hash',)
    ordering = ('-invited_at',)

    readonly_fields = ('email_hash', 'email_encrypted', 'invited_at', 'entered_at', 'completed_at')

    def email_hash_short(self, obj):
        """Show first 16 chars of hash"""
        return f"{obj.email_hash[:16]}..." if obj.email_hash else "-"
    email_hash_short.short_description = "Email Hash (truncated)"

    def has_add_permission(self, request):
        """Voters are added through invitations or room entry"""
        return False


class ReadOnlyAdmin(admin.ModelAdmin):
    """Submissions can only be created through the API and never edited"""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        """Only superusers can delete submissions"""
        return request.user.is_superuser


@admin.register(BallotSelection)
class BallotSelectionAdmin(ReadOnlyAdmin):
    """
    Anonymous ballot selections
    """
    list_display = ('id', 'room', 'position', 'candidate', 'timestamp_display')
    list_filter = ('room', 'timestamp')
    search_fields = ('room__title', 'candidate__name')
    ordering = ('-timestamp',)

    def timestamp_display(self, obj):
        return obj.timestamp.strftime('%d/%m/%Y %H:%M:%S')
    timestamp_display.short_description = "Timestamp"


@admin.register(Review)
class ReviewAdmin(ReadOnlyAdmin):
    """
    Anonymous reviews
    """
    list_display = ('id', 'room', 'position', 'rating', 'reviewed_at')
    list_filter = ('room', 'rating')
    search_fields = ('room__title', 'position__title', 'feedback')
    ordering = ('-reviewed_at',)
