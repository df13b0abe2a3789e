import uuid
from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models

from apps.permissions.gate import Role


class UserManager(BaseUserManager):
    """Email is the login identifier; there is no username"""

    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError("Email is required")
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("role", Role.ADMIN.value)
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    ROLE_CHOICES = [(role.value, role.value.replace("_", " ").title()) for role in Role]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    username = None
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=Role.CLIENT.value)
    is_developer = models.BooleanField(default=False)  # bypasses every permission check
    company = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=50, blank=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = "users"

    def __str__(self):
        return self.email

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email
