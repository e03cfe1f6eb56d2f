"""
State machine tables for ManufacturingOrder and WorkOrder.

Every legal (status, action) pair is listed explicitly. Anything absent
raises InvalidStatusTransitionError, no action silently no-ops.
"""

from django.core.exceptions import ImproperlyConfigured

from forgeman.conf import forgeman_settings
from forgeman.exceptions import InvalidStatusTransitionError
from forgeman.models.enums import OrderStatus, WorkOrderStatus


def _as_choice(choices, value):
    try:
        return choices(value)
    except ValueError:
        return value


# ══════════════════════════════════════════════════════════════
# MANUFACTURING ORDER
# ══════════════════════════════════════════════════════════════

ORDER_ACTION_TARGETS = {
    'confirm': OrderStatus.CONFIRMED,
    'plan': OrderStatus.PLANNED,
    'release': OrderStatus.RELEASED,
    'start': OrderStatus.IN_PROGRESS,
    'pause': OrderStatus.PAUSED,
    'resume': OrderStatus.IN_PROGRESS,
    'complete': OrderStatus.COMPLETED,
    'cancel': OrderStatus.CANCELLED,
}

ORDER_TRANSITIONS = {
    (OrderStatus.DRAFT, 'confirm'): OrderStatus.CONFIRMED,
    (OrderStatus.CONFIRMED, 'plan'): OrderStatus.PLANNED,
    (OrderStatus.PLANNED, 'release'): OrderStatus.RELEASED,
    (OrderStatus.CONFIRMED, 'start'): OrderStatus.IN_PROGRESS,
    (OrderStatus.PLANNED, 'start'): OrderStatus.IN_PROGRESS,
    (OrderStatus.RELEASED, 'start'): OrderStatus.IN_PROGRESS,
    (OrderStatus.IN_PROGRESS, 'pause'): OrderStatus.PAUSED,
    (OrderStatus.PAUSED, 'resume'): OrderStatus.IN_PROGRESS,
    (OrderStatus.IN_PROGRESS, 'complete'): OrderStatus.COMPLETED,
    (OrderStatus.DRAFT, 'cancel'): OrderStatus.CANCELLED,
    (OrderStatus.CONFIRMED, 'cancel'): OrderStatus.CANCELLED,
    (OrderStatus.PLANNED, 'cancel'): OrderStatus.CANCELLED,
    (OrderStatus.RELEASED, 'cancel'): OrderStatus.CANCELLED,
    (OrderStatus.IN_PROGRESS, 'cancel'): OrderStatus.CANCELLED,
    (OrderStatus.PAUSED, 'cancel'): OrderStatus.CANCELLED,
}

# Stages from which an order may start, per configured workflow depth
START_STATES = {
    'simple': (OrderStatus.CONFIRMED, OrderStatus.PLANNED, OrderStatus.RELEASED),
    'planned': (OrderStatus.PLANNED, OrderStatus.RELEASED),
    'released': (OrderStatus.RELEASED,),
}


def start_states() -> tuple:
    workflow = forgeman_settings.ORDER_WORKFLOW
    try:
        return START_STATES[workflow]
    except KeyError:
        raise ImproperlyConfigured(
            f"FORGEMAN['ORDER_WORKFLOW'] inválido: {workflow!r} "
            f"(opções: {', '.join(START_STATES)})"
        ) from None


def next_order_status(current: str, action: str) -> OrderStatus:
    """
    Target status for applying action to an order in current status.

    Raises:
        InvalidStatusTransitionError: edge not in the table, or start from
            a stage the configured workflow does not allow.
    """
    current = _as_choice(OrderStatus, current)
    target = ORDER_TRANSITIONS.get((current, action))
    if target is None or (action == 'start' and current not in start_states()):
        raise InvalidStatusTransitionError(
            'ManufacturingOrder',
            current,
            ORDER_ACTION_TARGETS.get(action, action),
        )
    return target


# ══════════════════════════════════════════════════════════════
# WORK ORDER
# ══════════════════════════════════════════════════════════════

WORK_ORDER_ACTION_TARGETS = {
    'start': WorkOrderStatus.IN_PROGRESS,
    'pause': WorkOrderStatus.PAUSED,
    'resume': WorkOrderStatus.IN_PROGRESS,
    'complete': WorkOrderStatus.COMPLETED,
    'cancel': WorkOrderStatus.CANCELLED,
}

WORK_ORDER_TRANSITIONS = {
    (WorkOrderStatus.PENDING, 'start'): WorkOrderStatus.IN_PROGRESS,
    (WorkOrderStatus.IN_PROGRESS, 'pause'): WorkOrderStatus.PAUSED,
    (WorkOrderStatus.PAUSED, 'resume'): WorkOrderStatus.IN_PROGRESS,
    (WorkOrderStatus.IN_PROGRESS, 'complete'): WorkOrderStatus.COMPLETED,
    (WorkOrderStatus.PENDING, 'cancel'): WorkOrderStatus.CANCELLED,
    (WorkOrderStatus.IN_PROGRESS, 'cancel'): WorkOrderStatus.CANCELLED,
    (WorkOrderStatus.PAUSED, 'cancel'): WorkOrderStatus.CANCELLED,
}


def next_work_order_status(current: str, action: str) -> WorkOrderStatus:
    """Target status for a work order action, or InvalidStatusTransitionError."""
    target = WORK_ORDER_TRANSITIONS.get((_as_choice(WorkOrderStatus, current), action))
    if target is None:
        raise InvalidStatusTransitionError(
            'WorkOrder',
            current,
            WORK_ORDER_ACTION_TARGETS.get(action, action),
        )
    return target
