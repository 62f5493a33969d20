"""Action registry: registered tool names, their parameter models and aliases."""

from .service import Registry
from .views import ActionRegistry, RegisteredAction

__all__ = ['ActionRegistry', 'RegisteredAction', 'Registry']
