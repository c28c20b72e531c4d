"""Catalog API routes (mounted under /api/ by the core urlconf)."""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import ShopViewSet, ProductViewSet

router = DefaultRouter()
router.register(r'shops', ShopViewSet, basename='shop')
router.register(r'products', ProductViewSet, basename='product')

urlpatterns = [
    path('', include(router.urls)),
]
