"""
URL configuration for core project.

Every app mounts its own router under ``/api/``; API documentation is served
by drf-spectacular.
"""
from django.contrib import admin
from django.urls import path, include
from django.views.generic import RedirectView
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView


urlpatterns = [
    # Default route: go to the API docs
    path('', RedirectView.as_view(url='/api/docs/', permanent=False), name='go-to-docs'),
    path('admin/', admin.site.urls),
    path('api/', include('products.urls')),
    path('api/accounts/', include('accounts.urls')),
    path('api/cart/', include('cart.urls')),
    path('api/orders/', include('orders.urls')),
    path('api/payments/', include('finance.urls')),
    path('api/deliveries/', include('deliveries.urls')),
    path('api/notifications/', include('notifications.urls')),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    # ده الرابط اللي هتفتحه في المتصفح
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    # رابط بديل بشكل منظّم أكتر (Redoc)
    path('api/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
]
