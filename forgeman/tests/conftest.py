"""
Pytest fixtures for Forgeman tests.
"""

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model

from forgeman import mes
from forgeman.models import (
    BillOfMaterials,
    BOMComponent,
    BOMOperation,
    Product,
    ProductType,
    Warehouse,
    WorkCenter,
)


User = get_user_model()


@pytest.fixture
def user(db):
    """Create a test user."""
    return User.objects.create_user(
        username='operador',
        password='testpass123'
    )


@pytest.fixture
def warehouse(db):
    return Warehouse.objects.create(code='central', name='Depósito Central', is_default=True)


@pytest.fixture
def steel(db):
    """Raw material measured in kg (3 decimal places)."""
    return Product.objects.create(
        sku='aco-1020',
        name='Aço 1020',
        unit='kg',
        product_type=ProductType.RAW_MATERIAL,
        reorder_point=Decimal('20'),
    )


@pytest.fixture
def screw(db):
    """Raw material counted in units (0 decimal places)."""
    return Product.objects.create(
        sku='parafuso-m6',
        name='Parafuso M6',
        unit='un',
        product_type=ProductType.RAW_MATERIAL,
    )


@pytest.fixture
def frame(db):
    """Finished good made of steel and screws."""
    return Product.objects.create(
        sku='quadro-aro-29',
        name='Quadro Aro 29',
        unit='un',
        product_type=ProductType.FINISHED_GOOD,
    )


@pytest.fixture
def cutting(db):
    return WorkCenter.objects.create(code='corte', name='Corte', capacity_per_hour=Decimal('12'))


@pytest.fixture
def assembly(db):
    return WorkCenter.objects.create(code='montagem', name='Montagem', capacity_per_hour=Decimal('6'))


@pytest.fixture
def bom(db, frame, steel, screw, cutting, assembly):
    """
    Default BOM for one frame:
    - 2.5 kg steel with 4% scrap
    - 4 screws
    - cut (30 min) then assemble (45 min)
    """
    bom = BillOfMaterials.objects.create(
        product=frame,
        name='Quadro padrão',
        version='1',
        is_default=True,
    )
    BOMComponent.objects.create(
        bom=bom, component=steel, quantity=Decimal('2.5'), unit='kg',
        scrap_factor=Decimal('0.04'), sequence=10,
    )
    BOMComponent.objects.create(
        bom=bom, component=screw, quantity=Decimal('4'), unit='un', sequence=20,
    )
    BOMOperation.objects.create(
        bom=bom, work_center=cutting, name='Cortar tubos', duration_minutes=30, sequence=10,
    )
    BOMOperation.objects.create(
        bom=bom, work_center=assembly, name='Montar quadro', duration_minutes=45, sequence=20,
    )
    return bom


@pytest.fixture
def stocked(db, steel, screw, user):
    """100 kg of steel and 100 screws in the unscoped stream."""
    mes.receive(Decimal('100'), steel, user=user)
    mes.receive(Decimal('100'), screw, user=user)


@pytest.fixture
def order(db, frame, bom, user):
    """Draft order for 10 frames."""
    return mes.create_order(frame, Decimal('10'), reference='MO-TESTE-0001', user=user)


@pytest.fixture
def confirmed_order(order, stocked, user):
    return mes.confirm_order(order, user=user)


@pytest.fixture
def running_order(confirmed_order, user):
    return mes.start_order(confirmed_order, user=user)
