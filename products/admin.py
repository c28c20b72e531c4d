"""Django admin configuration for shops and products."""

import csv
from django.contrib import admin
from django.utils.html import format_html
from django.http import HttpResponse
from .models import Shop, Product


# 1. عرض المنتجات داخل صفحة المتجر نفسه لسهولة الإضافة
class ProductInline(admin.TabularInline):
    """Inline editor for a shop's products."""

    model = Product
    extra = 1


@admin.register(Shop)
class ShopAdmin(admin.ModelAdmin):
    """Admin configuration for shops."""

    list_display = ('name', 'seller', 'phone', 'is_active', 'created_at')
    search_fields = ('name', 'seller__username')
    list_filter = ('is_active',)
    inlines = [ProductInline]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin configuration for inventory management."""

    list_display = ('name', 'shop', 'price', 'colored_stock', 'is_published')
    list_filter = (
        ('shop', admin.RelatedOnlyFieldListFilter),
        'is_published',
    )
    search_fields = ('name', 'shop__name')

    actions = ['export_to_csv']

    def export_to_csv(self, request, queryset):
        """Export selected products as a CSV inventory report."""
        response = HttpResponse(content_type='text/csv; charset=utf-8-sig')
        response['Content-Disposition'] = 'attachment; filename="inventory_report.csv"'

        writer = csv.writer(response)
        writer.writerow(['ID', 'Product', 'Shop', 'Price', 'Stock'])

        for product in queryset.select_related('shop'):
            writer.writerow([product.id, product.name, product.shop.name, product.price, product.stock])

        return response
    export_to_csv.short_description = "Export selected products to CSV"

    # تلوين المخزن بناءً على الكمية المتاحة
    def colored_stock(self, obj):
        """Render stock in color to highlight low inventory."""
        stock = obj.stock
        if stock <= 3:
            color = 'red'
        elif stock <= 10:
            color = 'orange'
        else:
            color = 'green'
        return format_html('<b style="color: {};">{}</b>', color, stock)

    colored_stock.short_description = 'Stock'
    colored_stock.admin_order_field = 'stock'
