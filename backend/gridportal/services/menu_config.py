"""
Menu configuration

Navigation menus are described in a JSON document of the form
{"version": "...", "menus": [...]}. Each menu may have children and tabs;
each tab has a content list of menu items. Any item may carry a "roles"
list restricting it to callers holding one of those roles.
"""
from typing import Any, Dict, List, Optional
import copy
import json
import structlog

from gridportal.config import settings

logger = structlog.get_logger()

EMPTY_CONFIG = {"version": "1.0", "menus": []}


class MenuConfigLoader:
    """Loads the menu document once and answers lookups against it."""

    def __init__(self, path: str):
        self.path = path
        self._config: Optional[Dict[str, Any]] = None

    def load(self) -> Dict[str, Any]:
        if self._config is not None:
            return self._config

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except FileNotFoundError:
            logger.warning("menu_config_not_found", path=self.path)
            config = copy.deepcopy(EMPTY_CONFIG)
        except ValueError as e:
            logger.error("menu_config_invalid", path=self.path, error=str(e))
            config = copy.deepcopy(EMPTY_CONFIG)

        config.setdefault("menus", [])
        self._config = config
        logger.info("menu_config_loaded", path=self.path, menus=len(config["menus"]))
        return config

    def clear_cache(self):
        self._config = None

    def get_menus(self) -> List[Dict[str, Any]]:
        return self.load()["menus"]

    def get_menu_by_id(self, menu_id: str) -> Optional[Dict[str, Any]]:
        """Top-level menus first, then their direct children."""
        menus = self.get_menus()
        for menu in menus:
            if menu.get("id") == menu_id:
                return menu
        for menu in menus:
            for child in menu.get("children") or []:
                if child.get("id") == menu_id:
                    return child
        return None

    def get_tabs_for_menu(self, menu_id: str) -> List[Dict[str, Any]]:
        menu = self.get_menu_by_id(menu_id)
        return (menu or {}).get("tabs") or []

    def has_tabs_for_menu(self, menu_id: str) -> bool:
        menu = self.get_menu_by_id(menu_id)
        return bool((menu or {}).get("hasTabs"))

    def get_tab_content(self, menu_id: str, tab_id: str) -> List[Dict[str, Any]]:
        for tab in self.get_tabs_for_menu(menu_id):
            if tab.get("id") == tab_id:
                return tab.get("content") or []
        return []

    def filter_for_roles(self, roles: List[str]) -> Dict[str, Any]:
        """Copy of the document without items the caller's roles may not see."""
        config = self.load()
        return {
            **{k: v for k, v in config.items() if k != "menus"},
            "menus": _filter_items(config["menus"], set(roles)),
        }

    def restricted_to(self, roles: List[str]) -> "MenuConfigLoader":
        """Loader over the role-filtered document."""
        restricted = MenuConfigLoader(self.path)
        restricted._config = self.filter_for_roles(roles)
        return restricted


def _is_visible(item: Dict[str, Any], roles: set) -> bool:
    allowed = item.get("roles")
    return not allowed or bool(roles.intersection(allowed))


def _filter_items(items: List[Dict[str, Any]], roles: set) -> List[Dict[str, Any]]:
    visible = []
    for item in items:
        if not _is_visible(item, roles):
            continue
        item = dict(item)
        if item.get("children"):
            item["children"] = _filter_items(item["children"], roles)
        if item.get("tabs"):
            tabs = []
            for tab in _filter_items(item["tabs"], roles):
                if tab.get("content"):
                    tab["content"] = _filter_items(tab["content"], roles)
                tabs.append(tab)
            item["tabs"] = tabs
        visible.append(item)
    return visible


_loader: Optional[MenuConfigLoader] = None


def get_menu_loader() -> MenuConfigLoader:
    """Dependency for the application-wide menu loader."""
    global _loader
    if _loader is None:
        _loader = MenuConfigLoader(settings.get_menu_config_path())
    return _loader
