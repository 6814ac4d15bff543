"""
URL configuration for chat API.

URL Structure:
    Chats:
        /chats/                         GET, POST
        /chats/group/                   POST
        /chats/{id}/                    DELETE
        /chats/{id}/rename/             PUT
        /chats/{id}/add/                PUT
        /chats/{id}/remove/             PUT
        /chats/{id}/leave/              DELETE
        /chats/{id}/read/               PUT
        /chats/{id}/messages/           GET
        /chats/{id}/messages/search/    GET

    Messages:
        /messages/                      POST
        /messages/{id}/                 PUT, DELETE
        /messages/{id}/reactions/       POST, DELETE
        /messages/{id}/read/            POST

All URLs are prefixed with /api/v1/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from chat.views import ChatViewSet, MessageViewSet

router = SimpleRouter()
router.register(r"chats", ChatViewSet, basename="chat")
router.register(r"messages", MessageViewSet, basename="message")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
]
