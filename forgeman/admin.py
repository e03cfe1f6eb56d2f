"""
Forgeman Admin.

Provides views for production debugging:
- Product, Warehouse, WorkCenter: list + edit
- BillOfMaterials: edit with component/operation inlines
- StockBalance, StockLedgerEntry: read-only (ledger only changes via mes)
- MaterialReservation: read-only with "release" action
- ManufacturingOrder / WorkOrder: status fields read-only
"""

import logging

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from forgeman.exceptions import ForgemanError
from forgeman.models import (
    BillOfMaterials,
    BOMComponent,
    BOMOperation,
    ManufacturingOrder,
    MaterialReservation,
    Product,
    StockBalance,
    StockLedgerEntry,
    Warehouse,
    WorkCenter,
    WorkOrder,
)

logger = logging.getLogger(__name__)


class ReadOnlyAdminMixin:
    """Rows are written by the services only."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =========================================================================
# CATALOG
# =========================================================================

@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['sku', 'name', 'product_type', 'unit', 'reorder_point', 'is_active']
    list_filter = ['product_type', 'is_active']
    search_fields = ['sku', 'name']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'is_default']
    search_fields = ['code', 'name']


@admin.register(WorkCenter)
class WorkCenterAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'capacity_per_hour', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name']


# =========================================================================
# BILL OF MATERIALS
# =========================================================================

class BOMComponentInline(admin.TabularInline):
    model = BOMComponent
    fk_name = 'bom'
    extra = 0
    autocomplete_fields = ['component']


class BOMOperationInline(admin.TabularInline):
    model = BOMOperation
    extra = 0


@admin.register(BillOfMaterials)
class BillOfMaterialsAdmin(admin.ModelAdmin):
    list_display = ['product', 'name', 'version', 'is_active', 'is_default', 'approved_at']
    list_filter = ['is_active', 'is_default']
    search_fields = ['name', 'product__sku', 'product__name']
    readonly_fields = ['approved_by', 'approved_at', 'created_at', 'updated_at']
    inlines = [BOMComponentInline, BOMOperationInline]


# =========================================================================
# LEDGER (read-only)
# =========================================================================

@admin.register(StockBalance)
class StockBalanceAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Balance admin — read-only cache of the ledger."""

    list_display = ['product', 'warehouse', 'quantity_display', 'reserved_display',
                    'available_display', 'updated_at']
    list_filter = ['warehouse']
    search_fields = ['product__sku', 'product__name']

    @admin.display(description=_('Saldo'))
    def quantity_display(self, obj):
        return obj.quantity

    @admin.display(description=_('Reservado'))
    def reserved_display(self, obj):
        return obj.reserved

    @admin.display(description=_('Disponível'))
    def available_display(self, obj):
        return obj.available


@admin.register(StockLedgerEntry)
class StockLedgerEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Ledger admin — immutable audit trail."""

    list_display = ['id', 'created_at', 'product', 'warehouse', 'transaction_type',
                    'quantity', 'running_balance', 'reference_type', 'reference_id', 'user']
    list_filter = ['transaction_type', 'warehouse']
    search_fields = ['product__sku', 'reference_id', 'notes']
    date_hierarchy = 'created_at'


# =========================================================================
# RESERVATIONS (read-only with release action)
# =========================================================================

@admin.register(MaterialReservation)
class MaterialReservationAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['order', 'product', 'warehouse', 'required_quantity',
                    'reserved_quantity', 'allocated_quantity', 'is_active', 'expires_at']
    list_filter = ['is_active']
    search_fields = ['order__reference', 'product__sku']
    actions = ['release_reservations']

    @admin.action(description=_('Liberar reservas selecionadas'))
    def release_reservations(self, request, queryset):
        from forgeman import mes

        count = 0
        for reservation in queryset.filter(is_active=True).select_related('order'):
            try:
                count += mes.release(
                    reservation.order,
                    reservation.product_id,
                    user=request.user,
                    reason='Liberado via admin',
                )
            except ForgemanError as exc:
                logger.warning(
                    "release_reservations: failed to release %s: %s", reservation.pk, exc,
                )

        self.message_user(request, _('{count} reserva(s) liberada(s).').format(count=count))


# =========================================================================
# ORDERS
# =========================================================================

class WorkOrderInline(admin.TabularInline):
    model = WorkOrder
    fk_name = 'order'
    extra = 0
    fields = ['sequence', 'reference', 'name', 'work_center', 'status',
              'estimated_duration', 'actual_duration']
    readonly_fields = fields
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(ManufacturingOrder)
class ManufacturingOrderAdmin(admin.ModelAdmin):
    """Order admin — lifecycle fields only change via mes."""

    list_display = ['reference', 'product', 'quantity', 'unit', 'status', 'priority',
                    'planned_end_date', 'is_overdue_display']
    list_filter = ['status', 'priority']
    search_fields = ['reference', 'product__sku']
    readonly_fields = ['reference', 'product', 'bom', 'warehouse', 'quantity', 'unit',
                       'status', 'produced_quantity', 'actual_start_date',
                       'actual_end_date', 'cancel_reason', 'created_by', 'version',
                       'created_at', 'updated_at']
    inlines = [WorkOrderInline]

    def has_add_permission(self, request):
        return False

    @admin.display(description=_('Atrasada?'), boolean=True)
    def is_overdue_display(self, obj):
        return obj.is_overdue


@admin.register(WorkOrder)
class WorkOrderAdmin(admin.ModelAdmin):
    list_display = ['reference', 'order', 'sequence', 'name', 'work_center', 'status']
    list_filter = ['status', 'work_center']
    search_fields = ['reference', 'order__reference']
    readonly_fields = ['reference', 'order', 'work_center', 'sequence', 'status',
                       'dependencies', 'actual_start_date', 'actual_end_date',
                       'actual_duration', 'version', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False
