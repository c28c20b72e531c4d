"""Django admin configuration for orders."""

from django.contrib import admin
from .models import Order, OrderItem
from finance.models import Transaction


# 1. عرض منتجات الطلب في جدول منظم
class OrderItemInline(admin.TabularInline):
    """Inline display of order items."""

    model = OrderItem
    extra = 0
    # جعل الحقول للقراءة فقط لضمان عدم التلاعب في أسعار الطلبات القديمة
    readonly_fields = ('product', 'unit_price', 'quantity', 'is_cancelled')
    can_delete = False


# 2. عرض محاولات الدفع الخاصة بالطلب
class TransactionInline(admin.StackedInline):
    """Inline display of the order's payment attempts."""

    model = Transaction
    extra = 0
    can_delete = False
    # منع إضافة معاملة مالية يدوياً؛ يجب أن تأتي من نظام الدفع
    max_num = 0

    def get_fields(self, request, obj=None):
        """Show all transaction fields except the primary key."""
        return [f.name for f in self.model._meta.fields if f.name != 'id']

    def get_readonly_fields(self, request, obj=None):
        """Make all transaction fields read-only in admin."""
        return [f.name for f in self.model._meta.fields]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin configuration for orders.

    Status is read-only here; transitions go through the API so the lifecycle
    rules and notifications apply.
    """

    list_display = ('id', 'buyer', 'shop', 'total_amount', 'payment_method', 'status', 'is_delivered', 'created_at')
    list_filter = ('status', 'payment_method', 'is_delivered', 'created_at')
    search_fields = ('id', 'buyer__username', 'shop__name', 'payment_reference')
    readonly_fields = (
        'status', 'total_amount', 'delivery_code', 'delivery_code_consumed_at', 'is_delivered',
        'payment_reference', 'paid_at', 'shipped_at', 'delivered_at', 'cancelled_at', 'cancelled_by',
    )

    # دمج المنتجات والدفع تحت بعض في صفحة واحدة
    inlines = [OrderItemInline, TransactionInline]

    def has_delete_permission(self, request, obj=None):
        return False
