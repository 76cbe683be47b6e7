import uuid

import core.models
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('email', models.EmailField(max_length=254, unique=True, verbose_name='Email')),
                ('full_name', models.CharField(blank=True, max_length=150, verbose_name='Full name')),
                ('role', models.CharField(choices=[('ADMIN', 'Fleet admin'), ('COURIER', 'Courier')], default='COURIER', max_length=20, verbose_name='Role')),
                ('tax_id', models.CharField(blank=True, max_length=20, null=True, unique=True, verbose_name='Company tax id')),
                ('birth_date', models.DateField(blank=True, null=True, verbose_name='Birth date')),
                ('license_number', models.CharField(blank=True, max_length=20, null=True, unique=True, verbose_name='Driver license number')),
                ('license_category', models.CharField(blank=True, choices=[('A', 'A (motorcycle)'), ('B', 'B (car)'), ('AB', 'A+B')], max_length=2, null=True, verbose_name='Driver license category')),
                ('is_active', models.BooleanField(default=True)),
                ('is_staff', models.BooleanField(default=False)),
                ('date_joined', models.DateTimeField(auto_now_add=True)),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'User',
                'verbose_name_plural': 'Users',
                'ordering': ['-date_joined'],
            },
            managers=[
                ('objects', core.models.UserManager()),
            ],
        ),
    ]
