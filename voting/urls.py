"""
Voting app URLs - room administration, participation, results
"""
from django.urls import path
from . import views

app_name = 'voting'

urlpatterns = [
    # Admin: rooms
    path('admin/rooms/', views.RoomListCreateView.as_view(), name='room_list'),
    path('admin/rooms/<int:room_id>/', views.RoomDetailView.as_view(), name='room_detail'),

    # Admin: candidate pictures
    path('admin/candidate-images/', views.CandidateImageUploadView.as_view(), name='candidate_image_upload'),

    # Admin: voters and invitations
    path('admin/rooms/<int:room_id>/voters/', views.RoomVotersView.as_view(), name='room_voters'),
    path('admin/rooms/<int:room_id>/invite/', views.InviteVotersView.as_view(), name='room_invite'),
    path('admin/rooms/<int:room_id>/share/', views.RoomShareView.as_view(), name='room_share'),

    # Admin: results
    path('admin/rooms/<int:room_id>/results/', views.RoomResultsView.as_view(), name='room_results'),
    path('admin/rooms/<int:room_id>/results/export/', views.RoomResultsExportView.as_view(), name='room_results_export'),

    # Participants
    path('vote/access/', views.RoomAccessView.as_view(), name='room_access'),
    path('vote/<int:room_id>/', views.PublicRoomView.as_view(), name='public_room'),
    path('vote/<int:room_id>/waiting/', views.WaitingRoomView.as_view(), name='waiting_room'),
    path('vote/<int:room_id>/enter/', views.ParticipantEntryView.as_view(), name='participant_entry'),
    path('vote/<int:room_id>/ballot/', views.BallotSubmitView.as_view(), name='submit_ballot'),
    path('vote/<int:room_id>/review/', views.ReviewSubmitView.as_view(), name='submit_review'),
    path('vote/<int:room_id>/status/', views.VoterStatusView.as_view(), name='voter_status'),
]
