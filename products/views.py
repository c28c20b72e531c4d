"""Catalog API views.

Includes CRUD for shops and products. Filtering/search/ordering/pagination
are provided for list endpoints.
"""

from rest_framework import viewsets, filters
from rest_framework.pagination import PageNumberPagination
from django_filters.rest_framework import DjangoFilterBackend

from .models import Shop, Product
from .serializers import ShopSerializer, ProductSerializer
from .permissions import IsSellerOrReadOnly, IsSellerOrReadOnlyForProduct


class StandardResultsSetPagination(PageNumberPagination):
    """Default pagination used by most API endpoints."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class ShopViewSet(viewsets.ModelViewSet):
    """Shops CRUD.

    - Public users: active shops only.
    - Sellers: CRUD on their own shops.
    """

    serializer_class = ShopSerializer
    pagination_class = StandardResultsSetPagination
    permission_classes = [IsSellerOrReadOnly]
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['name']
    ordering_fields = ['name', 'created_at']

    def get_queryset(self):
        user = self.request.user
        if user.is_authenticated and getattr(user, 'user_type', None) == 'seller':
            return Shop.objects.filter(seller=user).select_related('seller')
        return Shop.objects.filter(is_active=True).select_related('seller')

    def perform_create(self, serializer):
        serializer.save(seller=self.request.user)


class ProductViewSet(viewsets.ModelViewSet):
    """Products CRUD.

    - Public users: can read published products of active shops only.
    - Sellers: can CRUD only the products of their own shops.
    """

    serializer_class = ProductSerializer
    pagination_class = StandardResultsSetPagination

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['shop']
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'price', 'created_at']

    permission_classes = [IsSellerOrReadOnlyForProduct]

    def get_queryset(self):
        user = self.request.user
        if user.is_authenticated and getattr(user, 'user_type', None) == 'seller':
            return Product.objects.filter(shop__seller=user).select_related('shop')
        return (
            Product.objects.filter(is_published=True, shop__is_active=True)
            .select_related('shop')
        )
