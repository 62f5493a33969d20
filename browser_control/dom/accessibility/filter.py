# @file purpose: Decides which raw accessibility nodes make it into a snapshot
"""
Accessibility Node Filtering for browser_control

Operates on raw `AXNode` dicts as returned by `Accessibility.getFullAXTree`. A node is
"interesting" unless it is ignored, or it is a purely structural container without an
accessible name. Uninteresting nodes are not printed; their children are promoted to
the parent's depth by the serializer.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

# Roles that only carry layout. Kept only when they have a non-blank name.
STRUCTURAL_ROLES = {
    'generic', 'StructuralContainer', 'div', 'text', 'none', 'presentation'
}

# Boolean AX properties mapped to the capability token printed for them.
# The state name itself is printed too when the value is true.
BOOLEAN_CAPABILITIES = {
    'disabled': 'disableable',
    'expanded': 'expandable',
    'focused': 'focusable',
    'selected': 'selectable',
    'checked': 'checkable',
    'pressed': 'pressable',
    'editable': 'editable',
    'multiselectable': 'multiselectable',
    'modal': 'modal',
    'required': 'required',
    'readonly': 'readonly',
}

# Structural metadata never listed as key=value
EXCLUDED_PROPERTIES = {
    'id', 'role', 'name', 'elementHandle', 'children', 'backendNodeId', 'value', 'parentId',
    'description',
}


@dataclass
class FilteringStats:
    """Statistics about one snapshot pass"""
    total_nodes: int = 0
    printed_nodes: int = 0
    pruned_nodes: int = 0
    ignored_nodes: int = 0

    @property
    def compression_ratio(self) -> float:
        if self.total_nodes == 0:
            return 0.0
        return 1.0 - (self.printed_nodes / self.total_nodes)


def ax_value(prop: Optional[Dict[str, Any]]) -> Any:
    """Unwrap an `AXValue` ({'type': ..., 'value': ...}) to its value."""
    if not prop:
        return None
    return prop.get('value')


def is_interesting(node: Dict[str, Any]) -> bool:
    """Whether a raw AX node is printed in a non-verbose snapshot."""
    if node.get('ignored'):
        return False

    role = ax_value(node.get('role'))
    if role in STRUCTURAL_ROLES:
        name = ax_value(node.get('name'))
        return bool(name and str(name).strip())
    return True


def property_map(node: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten the node's `properties` list into name -> unwrapped value."""
    props: Dict[str, Any] = {}
    for prop in node.get('properties') or []:
        props[prop['name']] = ax_value(prop.get('value'))
    return props
