import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Venue',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('canonical_name', models.CharField(help_text="Display name (e.g., 'Yorba Linda ICE')", max_length=200, unique=True)),
                ('normalized_name', models.CharField(db_index=True, editable=False, help_text='Derived matching key', max_length=200)),
                ('street_address', models.CharField(blank=True, help_text="Street address (e.g., '23641 La Palma Ave')", max_length=255)),
                ('city', models.CharField(blank=True, help_text='City name', max_length=100)),
                ('state', models.CharField(blank=True, help_text='State/region abbreviation', max_length=50)),
                ('postal_code', models.CharField(blank=True, help_text='ZIP/postal code', max_length=20)),
                ('country', models.CharField(default='US', help_text='ISO 3166-1 alpha-2 country code', max_length=2)),
                ('formatted_address', models.CharField(blank=True, help_text='Single-line address as supplied or geocoded', max_length=400)),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, help_text='Latitude coordinate', max_digits=9, null=True)),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, help_text='Longitude coordinate', max_digits=9, null=True)),
                ('place_id', models.CharField(blank=True, help_text='External place identifier', max_length=255, null=True, unique=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['canonical_name'],
                'indexes': [models.Index(fields=['city', 'state'], name='venue_city_state_idx')],
            },
        ),
        migrations.CreateModel(
            name='VenueAlias',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('alias_text', models.CharField(help_text='Alias as observed', max_length=200)),
                ('normalized_alias', models.CharField(db_index=True, editable=False, max_length=200)),
                ('source', models.CharField(default='import', max_length=100)),
                ('confidence_weight', models.FloatField(default=1.0, help_text='Trust relative to the canonical name (0-1)', validators=[django.core.validators.MinValueValidator(0.0), django.core.validators.MaxValueValidator(1.0)])),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('venue', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='aliases', to='venues.venue')),
            ],
            options={
                'ordering': ['venue_id', 'alias_text'],
                'constraints': [models.UniqueConstraint(fields=('venue', 'normalized_alias'), name='unique_alias_per_venue')],
            },
        ),
        migrations.CreateModel(
            name='RejectedMatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('normalized_alias', models.CharField(db_index=True, max_length=200)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('venue', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='rejected_matches', to='venues.venue')),
            ],
            options={
                'constraints': [models.UniqueConstraint(fields=('normalized_alias', 'venue'), name='unique_rejected_match')],
            },
        ),
        migrations.CreateModel(
            name='ReviewQueueEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('alias_text', models.CharField(max_length=200)),
                ('normalized_alias', models.CharField(db_index=True, max_length=200)),
                ('candidates', models.JSONField(blank=True, default=list)),
                ('top_confidence', models.FloatField(db_index=True, default=0.0)),
                ('source', models.CharField(blank=True, max_length=100)),
                ('needs_manual_entry', models.BooleanField(default=False)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('created_new', 'Created new venue')], db_index=True, default='pending', max_length=20)),
                ('reviewed_by', models.CharField(blank=True, max_length=150)),
                ('auto_approved', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('chosen_venue', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approved_entries', to='venues.venue')),
                ('rejected_venue', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='rejected_entries', to='venues.venue')),
            ],
            options={
                'verbose_name_plural': 'review queue entries',
                'ordering': ['-top_confidence', 'created_at'],
                'indexes': [models.Index(fields=['status', 'created_at'], name='review_status_created_idx')],
                'constraints': [models.UniqueConstraint(condition=models.Q(('status', 'pending')), fields=('normalized_alias',), name='unique_pending_alias')],
            },
        ),
    ]
