"""
Menu API Routes

Menus hidden from the caller's roles read as missing.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from typing import Any, Dict, List

from gridportal.models import User
from gridportal.core.rbac import get_current_user
from gridportal.services.menu_config import MenuConfigLoader, get_menu_loader

router = APIRouter()


@router.get("")
async def get_menu_config(
    current_user: User = Depends(get_current_user),
    loader: MenuConfigLoader = Depends(get_menu_loader)
) -> Dict[str, Any]:
    """Menu document restricted to the caller's roles."""
    return loader.filter_for_roles(current_user.get_role_names())


@router.get("/{menu_id}/tabs")
async def get_menu_tabs(
    menu_id: str,
    current_user: User = Depends(get_current_user),
    loader: MenuConfigLoader = Depends(get_menu_loader)
) -> List[Dict[str, Any]]:
    visible = loader.restricted_to(current_user.get_role_names())
    if visible.get_menu_by_id(menu_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Menu not found")
    return visible.get_tabs_for_menu(menu_id)


@router.get("/{menu_id}/tabs/{tab_id}")
async def get_tab_content(
    menu_id: str,
    tab_id: str,
    current_user: User = Depends(get_current_user),
    loader: MenuConfigLoader = Depends(get_menu_loader)
) -> List[Dict[str, Any]]:
    visible = loader.restricted_to(current_user.get_role_names())
    if visible.get_menu_by_id(menu_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Menu not found")
    if not any(tab.get("id") == tab_id for tab in visible.get_tabs_for_menu(menu_id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tab not found")
    return visible.get_tab_content(menu_id, tab_id)
