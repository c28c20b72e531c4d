"""URL routes for accounts APIs."""

from django.urls import path, include
from rest_framework.routers import SimpleRouter
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
)
from .views import RegisterView, UserProfileViewSet

router = SimpleRouter()
router.register(r'profile', UserProfileViewSet, basename='user-profile')

urlpatterns = [
    # 1. نظام التسجيل
    path('register/', RegisterView.as_view(), name='auth_register'),
    # 2. نظام الدخول: /api/accounts/login/
    path('login/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    # 3. روابط الـ ViewSet
    path('', include(router.urls)),
]
