from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ElectionRoom',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255, verbose_name='Title')),
                ('description', models.TextField(verbose_name='Description')),
                ('room_type', models.CharField(choices=[('voting', 'Voting'), ('review', 'Review')], default='voting', max_length=20, verbose_name='Room Type')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('active', 'Active'), ('closed', 'Closed')], default='pending', help_text='Only active rooms accept participants', max_length=20, verbose_name='Status')),
                ('is_access_restricted', models.BooleanField(default=False, help_text='If True, uninvited participants need the access code', verbose_name='Access Restricted')),
                ('access_code', models.CharField(blank=True, default='', max_length=128, verbose_name='Access Code (hashed)')),
                ('deletion_password', models.CharField(blank=True, default='', max_length=128, verbose_name='Deletion Password (hashed)')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='election_rooms', to=settings.AUTH_USER_MODEL, verbose_name='Created By')),
            ],
            options={
                'verbose_name': 'Election Room',
                'verbose_name_plural': 'Election Rooms',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Position',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255, verbose_name='Title')),
                ('display_order', models.IntegerField(default=0, help_text='Lower values are shown first on the ballot', verbose_name='Display Order')),
                ('room', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='positions', to='voting.electionroom', verbose_name='Election Room')),
            ],
            options={
                'verbose_name': 'Position',
                'verbose_name_plural': 'Positions',
                'ordering': ['room', 'display_order', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Candidate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, verbose_name='Name')),
                ('image_url', models.URLField(blank=True, default='', max_length=500, verbose_name='Image URL')),
                ('display_order', models.IntegerField(default=0, verbose_name='Display Order')),
                ('position', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='candidates', to='voting.position', verbose_name='Position')),
            ],
            options={
                'verbose_name': 'Candidate',
                'verbose_name_plural': 'Candidates',
                'ordering': ['position', 'display_order', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Voter',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('email_hash', models.CharField(db_index=True, help_text='SHA-256 hash of the normalized email', max_length=64, verbose_name='Email Hash')),
                ('email_encrypted', models.TextField(verbose_name='Encrypted Email')),
                ('status', models.CharField(choices=[('invited', 'Invited'), ('waiting', 'Waiting'), ('in_room', 'In Room'), ('completed', 'Completed')], default='invited', max_length=20, verbose_name='Status')),
                ('invited_at', models.DateTimeField(blank=True, null=True, verbose_name='Invited At')),
                ('entered_at', models.DateTimeField(blank=True, null=True, verbose_name='Entered At')),
                ('completed_at', models.DateTimeField(blank=True, null=True, verbose_name='Completed At')),
                ('room', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='voters', to='voting.electionroom', verbose_name='Election Room')),
            ],
            options={
                'verbose_name': 'Voter',
                'verbose_name_plural': 'Voters',
                'ordering': ['-completed_at', '-invited_at', 'id'],
                'unique_together': {('room', 'email_hash')},
                'indexes': [models.Index(fields=['room', 'status'], name='voting_vote_room_id_5b0c1e_idx')],
            },
        ),
        migrations.CreateModel(
            name='BallotSelection',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('timestamp', models.DateTimeField(auto_now_add=True, verbose_name='Timestamp')),
                ('session_hash', models.CharField(help_text='Random hash shared by the selections of one ballot', max_length=64, verbose_name='Session Hash')),
                ('candidate', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='selections', to='voting.candidate', verbose_name='Candidate')),
                ('position', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='selections', to='voting.position', verbose_name='Position')),
                ('room', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='selections', to='voting.electionroom', verbose_name='Election Room')),
            ],
            options={
                'verbose_name': 'Ballot Selection',
                'verbose_name_plural': 'Ballot Selections',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['room'], name='voting_ball_room_id_8d2f4a_idx'),
                    models.Index(fields=['candidate'], name='voting_ball_candida_3e7b91_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Review',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rating', models.DecimalField(decimal_places=1, max_digits=2, validators=[django.core.validators.MinValueValidator(Decimal('0.5')), django.core.validators.MaxValueValidator(Decimal('5.0'))], verbose_name='Rating')),
                ('feedback', models.TextField(verbose_name='Feedback')),
                ('reviewed_at', models.DateTimeField(auto_now_add=True, verbose_name='Reviewed At')),
                ('session_hash', models.CharField(max_length=64, verbose_name='Session Hash')),
                ('position', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reviews', to='voting.position', verbose_name='Position')),
                ('room', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reviews', to='voting.electionroom', verbose_name='Election Room')),
            ],
            options={
                'verbose_name': 'Review',
                'verbose_name_plural': 'Reviews',
                'ordering': ['-reviewed_at', '-id'],
                'indexes': [models.Index(fields=['position'], name='voting_revi_positio_a41c2d_idx')],
            },
        ),
    ]
