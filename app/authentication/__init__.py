"""
Authentication application.

This app owns user identity for the chat backend: the email-based User
model (with its presence fields), JWT registration/login/logout, profile
updates, the user directory and blocking.

Key components:
    - User model: Email-based user with presence state
    - AuthService: Registration, login, logout, password changes
    - UserService: Directory queries, status updates, blocking

Usage:
    from authentication.models import User
    from authentication.services import AuthService, UserService
"""
