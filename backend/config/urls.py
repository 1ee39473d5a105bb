from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path
from rest_framework import routers
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from apps.boards.views import AutomationRuleViewSet, BoardCardViewSet

router = routers.DefaultRouter()
router.register(
    r"boards/(?P<board_id>[^/.]+)/automations",
    AutomationRuleViewSet,
    basename="board-automation",
)
router.register(
    r"boards/(?P<board_id>[^/.]+)/cards",
    BoardCardViewSet,
    basename="board-card",
)

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("api/", include(router.urls)),
]

if settings.DEBUG:
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
