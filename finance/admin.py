"""Django admin configuration for finance models."""

from django.contrib import admin
from .models import Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Admin configuration for payment transactions."""

    list_display = ('reference', 'get_order_id', 'provider', 'amount', 'status', 'created_at', 'confirmed_at')

    # الفلاتر الجانبية
    list_filter = ('provider', 'status', 'created_at')

    # البحث برقم الأوردر أو اسم العميل أو مرجع الدفع
    search_fields = ('reference', 'order__id', 'order__buyer__username')

    readonly_fields = [f.name for f in Transaction._meta.fields]

    def get_order_id(self, obj):
        """Render order id in a friendly format."""
        return f"Order #{obj.order_id}"
    get_order_id.short_description = 'رقم الطلب'
