import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Ride',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('driver_id', models.PositiveIntegerField(help_text='Posting driver')),
                ('source', models.CharField(help_text='Starting place name', max_length=255)),
                ('destination', models.CharField(help_text='Destination place name', max_length=255)),
                ('source_latitude', models.FloatField(blank=True, help_text='Starting point latitude', null=True, validators=[django.core.validators.MinValueValidator(-90), django.core.validators.MaxValueValidator(90)])),
                ('source_longitude', models.FloatField(blank=True, help_text='Starting point longitude', null=True, validators=[django.core.validators.MinValueValidator(-180), django.core.validators.MaxValueValidator(180)])),
                ('destination_latitude', models.FloatField(blank=True, help_text='Destination latitude', null=True, validators=[django.core.validators.MinValueValidator(-90), django.core.validators.MaxValueValidator(90)])),
                ('destination_longitude', models.FloatField(blank=True, help_text='Destination longitude', null=True, validators=[django.core.validators.MinValueValidator(-180), django.core.validators.MaxValueValidator(180)])),
                ('ride_date', models.DateField()),
                ('ride_time', models.TimeField()),
                ('total_seats', models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ('available_seats', models.PositiveIntegerField(default=1, help_text='Number of available seats', validators=[django.core.validators.MinValueValidator(0)])),
                ('status', models.CharField(choices=[('POSTED', 'Posted'), ('BOOKED', 'Booked'), ('IN_PROGRESS', 'In progress'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='POSTED', max_length=20)),
                ('notes', models.TextField(blank=True, default='')),
                ('route_geometry', models.TextField(blank=True, default='', help_text="Encoded polyline string of the driver's route")),
                ('route_geometry_source', models.CharField(blank=True, choices=[('DIRECTIONS', 'Directions API'), ('SYNTHETIC', 'Synthetic')], default='', max_length=20)),
                ('date_added', models.DateTimeField(auto_now_add=True)),
                ('date_last_updated', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Ride',
                'verbose_name_plural': 'Rides',
                'ordering': ['ride_date', 'ride_time'],
            },
        ),
    ]
