"""
Authentication and user directory views.

This module provides API views for:
- Registration, login, logout (JWT via simplejwt)
- Current user and profile updates
- Password changes
- User directory, search, online list, blocking, manual status

Related files:
    - serializers.py: Request/response serialization
    - services.py: Business logic (AuthService, UserService)
    - urls.py / user_urls.py: URL routing

All responses use the {success, message, data} envelope.
"""

from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.views import APIView

from authentication.serializers import (
    AuthPayloadSerializer,
    ChangePasswordSerializer,
    LoginSerializer,
    LogoutSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
    StatusUpdateSerializer,
    UserSerializer,
    UserSummarySerializer,
)
from authentication.services import AuthService, UserService
from chat.broadcast import broadcast_status_change
from core.pagination import UserPagination
from core.responses import error_response, success_response


def _auth_payload(user):
    tokens = AuthService.issue_tokens(user)
    return {"user": UserSerializer(user).data, **tokens}


# =============================================================================
# Account Views
# =============================================================================


class RegisterView(APIView):
    """
    POST: Create an account and return a token pair.

    URL: /api/v1/auth/register/
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="Register",
        tags=["Auth"],
        request=RegisterSerializer,
        responses={201: AuthPayloadSerializer},
    )
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = AuthService.register(**serializer.validated_data)
        if not result.success:
            return error_response(result)

        return success_response(
            _auth_payload(result.data),
            "User registered successfully",
            status.HTTP_201_CREATED,
        )


class LoginView(APIView):
    """
    POST: Exchange email/password for a token pair and mark the user online.

    URL: /api/v1/auth/login/
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="Log in",
        tags=["Auth"],
        request=LoginSerializer,
        responses={200: AuthPayloadSerializer},
    )
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = AuthService.login(**serializer.validated_data)
        if not result.success:
            return error_response(result)

        return success_response(_auth_payload(result.data), "Login successful")


class LogoutView(APIView):
    """
    POST: Mark the user offline and blacklist the refresh token.

    URL: /api/v1/auth/logout/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Log out", tags=["Auth"], request=LogoutSerializer)
    def post(self, request):
        serializer = LogoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        AuthService.logout(request.user, serializer.validated_data.get("refresh"))
        return success_response(message="Logout successful")


class MeView(APIView):
    """
    GET: Current user.

    URL: /api/v1/auth/me/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get current user", tags=["Auth"], responses={200: UserSerializer})
    def get(self, request):
        return success_response(UserSerializer(request.user).data)


class ProfileView(APIView):
    """
    PUT/PATCH: Update name, bio or avatar.

    URL: /api/v1/auth/profile/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Update profile",
        tags=["Auth - Profile"],
        request=ProfileUpdateSerializer,
        responses={200: UserSerializer},
    )
    def put(self, request):
        serializer = ProfileUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        result = AuthService.update_profile(request.user, **serializer.validated_data)
        return success_response(
            UserSerializer(result.data).data, "Profile updated successfully"
        )

    patch = put


class ChangePasswordView(APIView):
    """
    PUT: Change password.

    URL: /api/v1/auth/change-password/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Change password", tags=["Auth"], request=ChangePasswordSerializer)
    def put(self, request):
        serializer = ChangePasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = AuthService.change_password(
            request.user,
            serializer.validated_data["currentPassword"],
            serializer.validated_data["newPassword"],
        )
        if not result.success:
            return error_response(result)
        return success_response(message="Password changed successfully")


# =============================================================================
# User Directory
# =============================================================================


@extend_schema_view(
    list=extend_schema(summary="List users", tags=["Users"]),
    retrieve=extend_schema(summary="Get user", tags=["Users"]),
)
class UserViewSet(viewsets.GenericViewSet):
    """
    User directory.

    Endpoints:
        GET  /api/v1/users/             - All users except self (?search=, ?page=, ?limit=)
        GET  /api/v1/users/search/?q=   - Search, excluding blocked users
        GET  /api/v1/users/online/      - Online users
        GET  /api/v1/users/blocked/     - Users I have blocked
        PUT  /api/v1/users/status/      - Set my online status
        GET  /api/v1/users/{id}/        - User detail
        PUT  /api/v1/users/{id}/block/  - Toggle block
    """

    permission_classes = [IsAuthenticated]
    serializer_class = UserSummarySerializer
    pagination_class = UserPagination
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    def get_queryset(self):
        return UserService.directory(self.request.user, self.request.query_params.get("search"))

    def list(self, request):
        page = self.paginate_queryset(self.get_queryset())
        return self.get_paginated_response(UserSummarySerializer(page, many=True).data)

    def retrieve(self, request, pk=None):
        result = UserService.get_user(pk)
        if not result.success:
            return error_response(result)
        return success_response(UserSerializer(result.data).data)

    @extend_schema(summary="Search users", tags=["Users"])
    @action(detail=False, methods=["get"])
    def search(self, request):
        result = UserService.search(request.user, request.query_params.get("q"))
        if not result.success:
            return error_response(result)
        return success_response(UserSummarySerializer(result.data, many=True).data)

    @extend_schema(summary="List online users", tags=["Users"])
    @action(detail=False, methods=["get"])
    def online(self, request):
        users = UserService.online(request.user)
        return success_response(UserSummarySerializer(users, many=True).data)

    @extend_schema(summary="List blocked users", tags=["Users"])
    @action(detail=False, methods=["get"])
    def blocked(self, request):
        users = request.user.blocked_users.order_by("name")
        return success_response(UserSummarySerializer(users, many=True).data)

    @extend_schema(
        summary="Update my online status", tags=["Users"], request=StatusUpdateSerializer
    )
    @action(detail=False, methods=["put"], url_path="status")
    def update_status(self, request):
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = UserService.set_status(request.user, serializer.validated_data["isOnline"])
        broadcast_status_change(result.data)
        return success_response(
            UserSerializer(result.data).data, "Status updated successfully"
        )

    @extend_schema(summary="Block or unblock a user", tags=["Users"], request=None)
    @action(detail=True, methods=["put"])
    def block(self, request, pk=None):
        result = UserService.toggle_block(request.user, pk)
        if not result.success:
            return error_response(result)

        message = "User blocked successfully" if result.data else "User unblocked successfully"
        return success_response({"isBlocked": result.data}, message)
