"""
API Package
"""
from gridportal.api import (
    auth, role_management, dynamic_grid, registry, configuration, menu
)

__all__ = [
    "auth", "role_management", "dynamic_grid", "registry", "configuration", "menu"
]
