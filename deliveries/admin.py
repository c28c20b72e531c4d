"""Django admin configuration for deliveries."""

from django.contrib import admin
from django.utils.html import format_html
from .models import Delivery, DeliveryPosition, DeliveryStatus


class DeliveryPositionInline(admin.TabularInline):
    model = DeliveryPosition
    extra = 0
    can_delete = False
    fields = ('recorded_at', 'latitude', 'longitude', 'accuracy', 'speed', 'heading')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Delivery)
class DeliveryAdmin(admin.ModelAdmin):
    """Read-mostly view of deliveries; transitions go through the API."""

    list_display = ('id', 'order', 'agent', 'colored_status', 'assigned_at', 'delivered_at')
    list_filter = ('status', ('agent', admin.RelatedOnlyFieldListFilter), 'assigned_at')
    search_fields = ('order__id', 'agent__username', 'order__buyer__username')
    readonly_fields = (
        'order', 'status', 'assigned_at', 'picked_up_at', 'in_transit_at',
        'delivered_at', 'failed_at', 'assigned_by',
    )
    inlines = [DeliveryPositionInline]

    # تلوين الحالة لسهولة المتابعة
    def colored_status(self, obj):
        colors = {
            DeliveryStatus.DELIVERED: 'green',
            DeliveryStatus.FAILED: 'red',
        }
        return format_html('<b style="color: {};">{}</b>', colors.get(obj.status, 'orange'), obj.get_status_display())

    colored_status.short_description = 'Status'
    colored_status.admin_order_field = 'status'
