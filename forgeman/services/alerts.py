"""
Reorder alerts — products whose stock fell to the reorder point.

Usage:
    from forgeman.services.alerts import check_reorder

    # Run periodically (celery beat, cron) or after stock changes
    triggered = check_reorder()
    # Returns list of (Product, total_balance) tuples
"""

import logging
from decimal import Decimal

from django.db.models import Sum
from django.db.models.functions import Coalesce

from forgeman.models.catalog import Product
from forgeman.models.ledger import StockBalance
from forgeman.services._utils import pk_of

logger = logging.getLogger('forgeman')


def check_reorder(product=None) -> list[tuple[Product, Decimal]]:
    """
    Products at or below their reorder point.

    Only active products with reorder_point > 0 are checked. The balance
    is the sum over every warehouse stream.

    Args:
        product: Optional product to check (None = all).
    """
    qs = Product.objects.filter(is_active=True, reorder_point__gt=0)
    if product is not None:
        qs = qs.filter(pk=pk_of(product))

    totals = dict(
        StockBalance.objects.filter(product__in=qs)
        .values('product')
        .annotate(t=Coalesce(Sum('_quantity'), Decimal('0')))
        .values_list('product', 't')
    )

    triggered = []
    for item in qs.order_by('sku'):
        total = totals.get(item.pk, Decimal('0'))
        if total <= item.reorder_point:
            triggered.append((item, total))
            logger.warning(
                "stock.reorder.triggered",
                extra={
                    "product_id": item.pk,
                    "sku": item.sku,
                    "reorder_point": str(item.reorder_point),
                    "balance": str(total),
                },
            )
    return triggered
