"""
Custom user manager for email-based authentication.

This module provides the UserManager class that handles user creation
with email as the primary identifier instead of username.

Related files:
    - models.py: User model that uses this manager

Security:
    - Passwords are automatically hashed via set_password()
    - Email addresses are normalized (lowercase domain)
"""

from urllib.parse import quote

from django.contrib.auth.models import BaseUserManager


def default_avatar_url(name):
    """Build the generated initials avatar used when no avatar is uploaded."""
    return (
        f"https://ui-avatars.com/api/?name={quote(name)}"
        "&background=random&size=200"
    )


class UserManager(BaseUserManager):
    """
    Custom manager for User model with email-based authentication.

    Usage:
        # Create a regular user
        user = User.objects.create_user(
            email='alice@example.com',
            password='securepassword',
            name='Alice',
        )

        # Create a superuser
        admin = User.objects.create_superuser(
            email='admin@example.com',
            password='adminpassword'
        )
    """

    def create_user(self, email, password=None, **extra_fields):
        """
        Create and save a regular user with the given email and password.

        Args:
            email: User's email address (required)
            password: User's password
            **extra_fields: Additional fields to set on the user

        Returns:
            User: The created user instance

        Raises:
            ValueError: If email is not provided
        """
        if not email:
            raise ValueError("The Email field must be set")

        # Normalize email (lowercase the domain portion)
        email = self.normalize_email(email)

        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)

        # Display name falls back to the email local part
        name = (extra_fields.pop("name", "") or email.split("@")[0]).strip()
        extra_fields.setdefault("avatar", default_avatar_url(name))

        user = self.model(email=email, name=name, **extra_fields)

        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()

        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """
        Create and save a superuser with the given email and password.

        Raises:
            ValueError: If is_staff or is_superuser is not True
        """
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(email, password, **extra_fields)
