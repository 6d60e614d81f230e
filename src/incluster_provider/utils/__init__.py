"""Utility functions for the In-Cluster Provider."""

from .conditions import (
    set_available_condition,
    set_creating_condition,
    set_deleting_condition,
    set_reconcile_error_condition,
    set_reconcile_success_condition,
    update_condition,
)
from .context import get_context_dict, get_reconcile_id, with_reconcile_id
from .deadline import Deadline
from .events import emit_event
from .passwords import generate_password
from .secrets import get_secret_value

__all__ = [
    "update_condition",
    "set_available_condition",
    "set_creating_condition",
    "set_deleting_condition",
    "set_reconcile_error_condition",
    "set_reconcile_success_condition",
    "emit_event",
    "get_secret_value",
    "generate_password",
    "Deadline",
    "get_reconcile_id",
    "with_reconcile_id",
    "get_context_dict",
]
