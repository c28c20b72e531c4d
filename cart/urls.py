from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .views import CartViewSet, CartItemViewSet

router = SimpleRouter()
router.register(r'cart-items', CartItemViewSet, basename='cart-items')

urlpatterns = [
    # المسار الرئيسي للسلة: /api/cart/
    path('', CartViewSet.as_view({'get': 'list'}), name='cart-main'),
    path('', include(router.urls)),
]
