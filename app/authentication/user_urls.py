"""
URL configuration for the user directory (prefix /api/v1/users/).
"""

from rest_framework.routers import SimpleRouter

from authentication.views import UserViewSet

app_name = "users"

router = SimpleRouter()
router.register("", UserViewSet, basename="user")

urlpatterns = router.urls
