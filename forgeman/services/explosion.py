"""
BOM explosion — bill of materials → flat material requirements.

    required = quantity_per_unit * order_quantity * (1 + scrap_factor)

rounded half-up to the precision of the component's unit
(see forgeman.values.round_quantity).
"""

import logging

from forgeman.exceptions import EntityNotFoundError, ValidationError
from forgeman.models.bom import BillOfMaterials
from forgeman.services._utils import pk_of
from forgeman.values import Quantity, Requirement, to_decimal

logger = logging.getLogger('forgeman')


def default_bom(product) -> BillOfMaterials | None:
    """The product's default+active BOM, if any."""
    return BillOfMaterials.objects.default().filter(product=pk_of(product)).first()


def _load(bom) -> BillOfMaterials:
    if isinstance(bom, BillOfMaterials):
        return bom
    try:
        return BillOfMaterials.objects.get(pk=bom)
    except BillOfMaterials.DoesNotExist:
        raise EntityNotFoundError('BillOfMaterials', bom) from None


def _order_quantity(value):
    quantity = to_decimal(value, 'order_quantity')
    if quantity <= 0:
        raise ValidationError("Quantidade da ordem deve ser positiva", requested=quantity)
    return quantity


def _merge(requirements: list[Requirement]) -> list[Requirement]:
    """Sum requirements of the same component, keeping first-seen order."""
    merged: dict[int, Requirement] = {}
    for req in requirements:
        current = merged.get(req.product_id)
        if current is None:
            merged[req.product_id] = req
            continue
        total = Quantity(current.quantity, current.unit) + Quantity(req.quantity, req.unit)
        merged[req.product_id] = Requirement(req.product_id, total.value, total.unit)
    return list(merged.values())


def _component_requirement(component, order_quantity) -> Requirement | None:
    if component.unit.strip().lower() != component.component.unit.strip().lower():
        raise ValidationError(
            "Unidade do componente difere da unidade do produto",
            bom_id=component.bom_id,
            component_id=component.component_id,
            component_unit=component.unit,
            product_unit=component.component.unit,
        )
    per_unit = Quantity.of(component.quantity, component.unit)
    required = (per_unit * order_quantity * (1 + component.scrap_factor)).quantize()
    if required.is_zero:
        logger.warning(
            "bom.explode.zero_requirement",
            extra={
                "bom_id": component.bom_id,
                "component_id": component.component_id,
                "order_quantity": str(order_quantity),
            },
        )
        return None
    return Requirement(component.component_id, required.value, required.unit)


def explode(bom, order_quantity) -> list[Requirement]:
    """
    Single-level explosion: every component is treated as a leaf.

    Args:
        bom: BillOfMaterials (or pk)
        order_quantity: Quantity of finished product to make (> 0)

    Returns:
        One Requirement per component product, in component sequence order.

    Raises:
        EntityNotFoundError: BOM does not exist
        ValidationError: order_quantity <= 0, unit mismatch
    """
    bom = _load(bom)
    quantity = _order_quantity(order_quantity)

    requirements = []
    for component in bom.components.select_related('component').order_by('sequence'):
        requirement = _component_requirement(component, quantity)
        if requirement is not None:
            requirements.append(requirement)
    return _merge(requirements)


def explode_nested(bom, order_quantity, _path: tuple = ()) -> list[Requirement]:
    """
    Multi-level explosion.

    Components that are not raw materials and have a default BOM are
    exploded recursively; their own requirement is replaced by the
    requirements of their sub-components.

    Raises:
        ValidationError: a product appears twice on the same path (cycle)
    """
    bom = _load(bom)
    quantity = _order_quantity(order_quantity)

    if bom.product_id in _path:
        raise ValidationError(
            "Ciclo detectado na estrutura de produto",
            path=[*_path, bom.product_id],
        )
    path = (*_path, bom.product_id)

    requirements = []
    for component in bom.components.select_related('component').order_by('sequence'):
        requirement = _component_requirement(component, quantity)
        if requirement is None:
            continue
        sub_bom = None if component.component.is_raw_material else default_bom(component.component_id)
        if sub_bom is None:
            requirements.append(requirement)
        else:
            requirements.extend(explode_nested(sub_bom, requirement.quantity, path))
    return _merge(requirements)
