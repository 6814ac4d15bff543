"""
URL configuration for the chat backend.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints
        register/                  - Create an account, returns tokens
        login/                     - Email/password login, marks user online
        logout/                    - Marks user offline, blacklists refresh token
        me/                        - Current user
        profile/                   - Update name/bio/avatar
        change-password/           - Change password
        token/refresh/             - Refresh access token
    /api/v1/users/                 - User directory
        search/                    - Search by name/email
        online/                    - Online users
        blocked/                   - Blocked users
        status/                    - Update own online status
        {id}/                      - User detail
        {id}/block/                - Toggle block
    /api/v1/chats/                 - Chat list / access direct chat
        group/                     - Create group chat
        {id}/                      - Delete chat
        {id}/rename/               - Rename group (admin)
        {id}/add/                  - Add member (admin)
        {id}/remove/               - Remove member (admin)
        {id}/leave/                - Leave group
        {id}/read/                 - Mark chat as read
        {id}/messages/             - Paginated message history
        {id}/messages/search/      - Search messages in chat
    /api/v1/messages/              - Send message
        {id}/                      - Edit / delete message
        {id}/reactions/            - Add / remove own reaction
        {id}/read/                 - Record read receipt

WebSocket:
    /ws/chat/                      - Real-time events (see chat.routing)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    path("auth/", include("authentication.urls")),
    path("users/", include("authentication.user_urls")),
    path("", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Chat Admin"
admin.site.site_title = "Chat Admin Portal"
admin.site.index_title = "Welcome to the Chat Admin Portal"
