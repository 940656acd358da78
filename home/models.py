# home/models.py
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from django.db import models
from django.utils import timezone


class CustomUserManager(BaseUserManager):
    """
    Custom user manager for the loan servicing back office.
    Handles user creation with email as the unique identifier.
    """

    def create_user(self, email, password=None, **extra_fields):
        """
        Create and save a user with the given email and password.
        Managers always get a grant row (all grants off).
        """
        if not email:
            raise ValueError('Users must have an email address')

        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        if user.role == CustomUser.MANAGER:
            ManagerGrant.objects.get_or_create(user=user)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """
        Create and save a superuser with the given email and password.
        """
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('role', CustomUser.ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True')

        return self.create_user(email, password, **extra_fields)

    def get_by_natural_key(self, email):
        """
        Allow authentication using email.
        """
        return self.get(email=email)


class CustomUser(AbstractBaseUser, PermissionsMixin):
    """
    Back-office user. The role is a closed set; manager-only delete grants
    live on the related ManagerGrant row (see ``grants``).
    """

    # User Roles
    ADMIN = 'admin'
    MANAGER = 'manager'
    AGENT = 'agent'
    CUSTOMER = 'customer'

    ROLE_CHOICES = [
        (ADMIN, 'Administrator'),
        (MANAGER, 'Manager'),
        (AGENT, 'Agent'),
        (CUSTOMER, 'Customer'),
    ]

    phone_regex = RegexValidator(
        regex=r'^\+?1?\d{9,15}$',
        message="Phone number must be entered in the format: '+999999999'. Up to 15 digits allowed."
    )

    email = models.EmailField(
        verbose_name='email address',
        max_length=255,
        unique=True,
        db_index=True,
    )

    # Personal Information
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(
        validators=[phone_regex],
        max_length=17,
        blank=True,
        null=True,
        help_text='Contact phone number'
    )
    address = models.TextField(blank=True, null=True)

    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default=AGENT,
        help_text='User role in the system'
    )

    # Status Fields
    is_active = models.BooleanField(
        default=True,
        help_text='Designates whether this user should be treated as active.'
    )
    is_staff = models.BooleanField(
        default=False,
        help_text='Designates whether the user can log into admin site.'
    )

    # Timestamps
    date_joined = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CustomUserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name']

    class Meta:
        db_table = 'custom_users'
        verbose_name = 'user'
        verbose_name_plural = 'users'
        ordering = ['-date_joined']
        indexes = [
            models.Index(fields=['role'], name='custom_users_role_idx'),
            models.Index(fields=['is_active'], name='custom_users_active_idx'),
        ]

    def __str__(self):
        return f"{self.get_full_name()} ({self.email})"

    def get_full_name(self):
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    def get_short_name(self):
        return self.first_name or self.email.split('@')[0]

    # Role Check Methods
    def is_admin_user(self):
        return self.role == self.ADMIN

    def is_manager(self):
        return self.role == self.MANAGER

    @property
    def grants(self):
        """
        The manager's delete grants, or None for every other role.
        """
        if self.role != self.MANAGER:
            return None
        try:
            return self.manager_grant
        except ManagerGrant.DoesNotExist:
            return None

    def save(self, *args, **kwargs):
        # Admins and managers can use the Django admin site
        if self.role in [self.ADMIN, self.MANAGER]:
            self.is_staff = True
        super().save(*args, **kwargs)


class ManagerGrant(models.Model):
    """
    Delete grants held by a manager. A row may only exist for a MANAGER;
    grants are changed by admins only and every change is audited.
    """

    GRANT_FIELDS = ('can_delete_collections', 'can_delete_users', 'can_delete_customers')

    user = models.OneToOneField(
        CustomUser,
        on_delete=models.PROTECT,
        related_name='manager_grant',
        limit_choices_to={'role': CustomUser.MANAGER},
    )
    can_delete_collections = models.BooleanField(default=False)
    can_delete_users = models.BooleanField(default=False)
    can_delete_customers = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'manager_grants'

    def __str__(self):
        return f"Grants for {self.user.email}"

    def clean(self):
        if self.user.role != CustomUser.MANAGER:
            raise ValidationError('Grants can only be attached to managers.')

    def save(self, *args, **kwargs):
        self.clean()
        super().save(*args, **kwargs)

    def as_dict(self):
        return {field: getattr(self, field) for field in self.GRANT_FIELDS}
