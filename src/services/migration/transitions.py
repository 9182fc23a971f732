"""
Product state transitions between plain, composite, variable and
composite+variable shapes.

A transition is named by comparing the current ``(is_composite,
has_variation)`` flags with the target flags; each transition type has a
config describing how it is presented and confirmed.

Usage:
    from src.services.migration.transitions import determine_transition_type

    determine_transition_type(
        {"is_composite": True, "has_variation": False},
        {"is_composite": True, "has_variation": True},
    )  # 'enable-variations'
"""

import copy
from typing import Any, Dict, Optional

ENABLE_VARIATIONS = "enable-variations"
DISABLE_COMPOSITE = "disable-composite"
DISABLE_VARIATIONS = "disable-variations"
ENABLE_COMPOSITE = "enable-composite"

TRANSITION_TYPES = [ENABLE_VARIATIONS, DISABLE_COMPOSITE, DISABLE_VARIATIONS, ENABLE_COMPOSITE]

TRANSITION_CONFIGS: Dict[str, Dict[str, Any]] = {
    ENABLE_VARIATIONS: {
        "title": "Enable Product Variations?",
        "description": (
            'This will convert your existing composition into "Variation 1". '
            "You can then create additional variations with different compositions."
        ),
        "warning": (
            "Your current composition will become the first variation. "
            "This action cannot be undone."
        ),
        "confirm_text": "Enable Variations",
        "cancel_text": "Cancel",
        "destructive": False,
        "requires_confirmation": False,
        "warning_type": "info",
    },
    DISABLE_COMPOSITE: {
        "title": "Disable Composite Product?",
        "description": "This will permanently delete all composition data for this product.",
        "warning": (
            "All composition items and variation data will be lost forever. "
            "This action cannot be undone."
        ),
        "confirm_text": "Delete Composition Data",
        "cancel_text": "Keep Composition",
        "destructive": True,
        "requires_confirmation": True,
        "warning_type": "error",
    },
    DISABLE_VARIATIONS: {
        "title": "Disable Product Variations?",
        "description": "This will permanently delete all variation-specific composition data.",
        "warning": (
            "All variation compositions will be merged into a single composition "
            "or lost forever. This action cannot be undone."
        ),
        "confirm_text": "Delete Variation Data",
        "cancel_text": "Keep Variations",
        "destructive": True,
        "requires_confirmation": True,
        "warning_type": "error",
    },
    ENABLE_COMPOSITE: {
        "title": "Enable Composite Product?",
        "description": "This will allow you to add composition items to this product.",
        "warning": None,
        "confirm_text": "Enable Composition",
        "cancel_text": "Cancel",
        "destructive": False,
        "requires_confirmation": False,
        "warning_type": "info",
    },
}


def _flag(flags: Any, name: str) -> bool:
    if isinstance(flags, dict):
        return bool(flags.get(name))
    return bool(getattr(flags, name, False))


def determine_transition_type(current_flags: Any, target_flags: Any) -> Optional[str]:
    """
    Name the transition between two flag states.

    Checked in order, first match wins:
    composite -> composite+variable is ``enable-variations``; leaving
    composite is ``disable-composite``; composite+variable -> composite is
    ``disable-variations``; entering composite is ``enable-composite``.

    Args:
        current_flags: Mapping or object with ``is_composite``/``has_variation``
        target_flags: Same shape, the desired state

    Returns:
        Transition type, or None when no migration is needed
    """
    current_composite = _flag(current_flags, "is_composite")
    current_variation = _flag(current_flags, "has_variation")
    target_composite = _flag(target_flags, "is_composite")
    target_variation = _flag(target_flags, "has_variation")

    if current_composite and not current_variation and target_composite and target_variation:
        return ENABLE_VARIATIONS
    if current_composite and not target_composite:
        return DISABLE_COMPOSITE
    if current_composite and current_variation and target_composite and not target_variation:
        return DISABLE_VARIATIONS
    if not current_composite and target_composite:
        return ENABLE_COMPOSITE
    return None


def get_transition_config(transition_type: str, existing_data_count: int = 0) -> Dict[str, Any]:
    """
    Presentation config for a transition type.

    The warning is rewritten to mention how much data is affected. A copy is
    returned; the shared table is never modified.

    Raises:
        KeyError: Unknown transition type
    """
    config = copy.deepcopy(TRANSITION_CONFIGS[transition_type])
    if config["warning"] and existing_data_count > 0:
        item_text = "item" if existing_data_count == 1 else "items"
        if transition_type == ENABLE_VARIATIONS:
            config["warning"] = (
                f"{existing_data_count} composition {item_text} will be moved to the first variation."
            )
        elif transition_type == DISABLE_COMPOSITE:
            config["warning"] = (
                f"{existing_data_count} composition {item_text} will be permanently deleted."
            )
        elif transition_type == DISABLE_VARIATIONS:
            config["warning"] = "All variation compositions will be permanently deleted."
    return config
