"""
URL configuration for authentication endpoints.

URL structure (prefix /api/v1/auth/):
    register/         - Create account, returns tokens
    login/            - Log in, returns tokens, marks user online
    logout/           - Mark user offline, blacklist refresh token
    me/               - Current user
    profile/          - Update profile
    change-password/  - Change password
    token/refresh/    - Rotate refresh token / obtain new access token
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from authentication.views import (
    ChangePasswordView,
    LoginView,
    LogoutView,
    MeView,
    ProfileView,
    RegisterView,
)

app_name = "authentication"

urlpatterns = [
    path("register/", RegisterView.as_view(), name="register"),
    path("login/", LoginView.as_view(), name="login"),
    path("logout/", LogoutView.as_view(), name="logout"),
    path("me/", MeView.as_view(), name="me"),
    path("profile/", ProfileView.as_view(), name="profile"),
    path("change-password/", ChangePasswordView.as_view(), name="change-password"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
]
