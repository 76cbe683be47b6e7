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
            name='Vehicle',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('plate', models.CharField(max_length=10, unique=True, verbose_name='Plate')),
                ('model', models.CharField(max_length=100, verbose_name='Model')),
                ('year', models.PositiveSmallIntegerField(verbose_name='Year')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Vehicle',
                'verbose_name_plural': 'Vehicles',
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='Rental',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('plan', models.PositiveSmallIntegerField(choices=[(7, '7 days'), (15, '15 days'), (30, '30 days')], verbose_name='Plan (days)')),
                ('start_date', models.DateTimeField(verbose_name='Start (UTC)')),
                ('predicted_end_date', models.DateTimeField(verbose_name='Predicted end (UTC)')),
                ('end_date', models.DateTimeField(blank=True, null=True, verbose_name='Actual return (UTC)')),
                ('total_cost', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, verbose_name='Total cost')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('courier', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='rentals', to=settings.AUTH_USER_MODEL, verbose_name='Courier')),
                ('vehicle', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='rentals', to='fleet.vehicle', verbose_name='Vehicle')),
            ],
            options={
                'verbose_name': 'Rental',
                'verbose_name_plural': 'Rentals',
                'ordering': ['-start_date'],
                'indexes': [
                    models.Index(fields=['vehicle', 'start_date'], name='fleet_renta_vehicle_0a1c4e_idx'),
                    models.Index(fields=['courier', 'end_date'], name='fleet_renta_courier_5b7d2f_idx'),
                ],
            },
        ),
    ]
