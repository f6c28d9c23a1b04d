"""
Drill-down navigation

Clicking a link cell opens a child grid filtered by values from the clicked
row. The navigation path is kept as a list of levels and round-trips through
URL query parameters so a drilled-down view survives a page reload.

Two modes:

* stateful: the full path is kept for breadcrumb navigation and encoded as
  drill=a|b, filters={..}|{..}, breadcrumbs=x>y, level=n
* stateless (maxDepth == -1): a sliding window of at most two levels,
  encoded as drill=<procedure>, filters={..}, stateless=true
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json
import re
import structlog

from gridportal.services.grid.naming import display_name_from_procedure

logger = structlog.get_logger()

UNLIMITED_DEPTH = -1
DEFAULT_SEPARATOR = "_"
PLACEHOLDER_PATTERN = re.compile(r"\{([^}]+)\}")


@dataclass
class DrillDownLevel:
    procedure_name: str
    display_name: str
    filters: Dict[str, Any] = field(default_factory=dict)
    breadcrumb_label: str = ""


@dataclass
class DrillDownState:
    levels: List[DrillDownLevel] = field(default_factory=list)
    current_level: int = 0
    is_stateless: bool = False

    @property
    def is_root(self) -> bool:
        return not self.levels

    def current(self) -> Optional[DrillDownLevel]:
        if not self.levels:
            return None
        return self.levels[self.current_level]


def root_level(procedure_name: str) -> DrillDownLevel:
    return DrillDownLevel(
        procedure_name=procedure_name,
        display_name=procedure_name,
        filters={},
        breadcrumb_label=display_name_from_procedure(procedure_name)
    )


def build_filters(filter_params: List[Dict[str, Any]], row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map source fields of the clicked row onto target columns of the child grid.

    Null source values are skipped; a parameter with no values left produces
    no filter. Several values are joined with the parameter's separator.
    """
    filters = {}
    for param in filter_params or []:
        values = [row.get(f) for f in param.get("sourceFields") or []]
        values = [v for v in values if v is not None]
        if not values:
            continue
        if len(values) == 1:
            filters[param["targetColumn"]] = values[0]
        else:
            separator = param.get("separator") or DEFAULT_SEPARATOR
            filters[param["targetColumn"]] = separator.join(str(v) for v in values)
    return filters


def build_breadcrumb_label(template: Optional[str], row: Dict[str, Any]) -> str:
    """Replace {field} placeholders with row values; missing fields become ''."""
    if not template:
        return ""

    def substitute(match):
        value = row.get(match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def effective_max_depth(config: Dict[str, Any], enable_unlimited: bool, default_max_depth: int) -> int:
    if enable_unlimited:
        return UNLIMITED_DEPTH
    max_depth = config.get("maxDepth")
    return default_max_depth if max_depth is None else int(max_depth)


class DrillDownNavigator:
    """Applies navigation actions to a DrillDownState."""

    def __init__(self, state: Optional[DrillDownState] = None):
        self.state = state or DrillDownState()

    def drill_down(self, config: Dict[str, Any], row: Dict[str, Any], base_procedure: str) -> bool:
        """
        Push a level for config['targetProcedure'].

        Returns False when the configured maxDepth has been reached.
        """
        state = self.state
        max_depth = int(config.get("maxDepth", UNLIMITED_DEPTH))
        stateless = max_depth == UNLIMITED_DEPTH

        if not stateless and state.current_level >= max_depth:
            logger.warning("drill_down_max_depth_reached", max_depth=max_depth, level=state.current_level)
            return False

        target = config["targetProcedure"]
        new_level = DrillDownLevel(
            procedure_name=target,
            display_name=target,
            filters=build_filters(config.get("filterParams") or [], row),
            breadcrumb_label=build_breadcrumb_label(config.get("breadcrumbLabel"), row)
        )

        if stateless:
            if not state.levels or not state.is_stateless:
                levels = [root_level(base_procedure), new_level]
            else:
                previous = state.levels[state.current_level]
                if previous.procedure_name == new_level.procedure_name:
                    levels = [state.levels[0], new_level]
                else:
                    levels = [previous, new_level]
            self.state = DrillDownState(levels=levels, current_level=1, is_stateless=True)
        else:
            levels = list(state.levels) or [root_level(base_procedure)]
            levels.append(new_level)
            self.state = DrillDownState(levels=levels, current_level=len(levels) - 1, is_stateless=False)

        logger.info(
            "drill_down",
            target=target,
            level=self.state.current_level,
            stateless=self.state.is_stateless
        )
        return True

    def go_back(self) -> bool:
        if self.state.current_level <= 0:
            return False
        return self.go_to_level(self.state.current_level - 1)

    def go_to_level(self, index: int) -> bool:
        if index < 0 or index >= len(self.state.levels):
            return False
        if index == 0:
            self.reset()
            return True
        self.state = DrillDownState(
            levels=self.state.levels[:index + 1],
            current_level=index,
            is_stateless=self.state.is_stateless
        )
        return True

    def reset(self):
        self.state = DrillDownState()

    def current_procedure(self, base_procedure: str) -> str:
        level = self.state.current()
        return level.procedure_name if level else base_procedure

    def current_filters(self) -> Dict[str, Any]:
        level = self.state.current()
        return dict(level.filters) if level else {}


def to_query_params(state: DrillDownState) -> Dict[str, str]:
    """Encode a state as URL query parameters; root encodes as no parameters."""
    if not state.levels or state.current_level <= 0:
        return {}

    if state.is_stateless:
        current = state.levels[state.current_level]
        return {
            "drill": current.procedure_name,
            "filters": json.dumps(current.filters),
            "stateless": "true",
        }

    return {
        "drill": "|".join(level.procedure_name for level in state.levels),
        "filters": "|".join(json.dumps(level.filters) for level in state.levels),
        "breadcrumbs": ">".join(level.breadcrumb_label for level in state.levels),
        "level": str(state.current_level),
    }


def _parse_state(params: Dict[str, str]) -> DrillDownState:
    drill = params["drill"]

    if params.get("stateless") == "true":
        # Only the current level survives a reload in stateless mode
        level = DrillDownLevel(
            procedure_name=drill,
            display_name=drill,
            filters=json.loads(params.get("filters") or "{}"),
            breadcrumb_label=display_name_from_procedure(drill)
        )
        return DrillDownState(levels=[level], current_level=0, is_stateless=True)

    procedures = drill.split("|")
    filters = [json.loads(f) for f in params["filters"].split("|")]
    if not all(isinstance(f, dict) for f in filters):
        raise ValueError("Drill-down filters must be JSON objects")
    breadcrumbs = params["breadcrumbs"].split(">")
    current_level = int(params.get("level") or 0)
    if current_level < 0 or current_level >= len(procedures):
        raise ValueError(f"Drill-down level out of range: {current_level}")

    levels = [
        DrillDownLevel(
            procedure_name=procedure,
            display_name=procedure,
            filters=filters[i] if i < len(filters) and filters[i] else {},
            breadcrumb_label=breadcrumbs[i] if i < len(breadcrumbs) and breadcrumbs[i] else procedure
        )
        for i, procedure in enumerate(procedures)
    ]
    return DrillDownState(levels=levels, current_level=current_level, is_stateless=False)


def from_query_params(params: Optional[Dict[str, str]]) -> DrillDownState:
    """Decode query parameters; malformed parameters reset to the root state."""
    if not params or not params.get("drill"):
        return DrillDownState()
    try:
        return _parse_state(params)
    except (KeyError, ValueError) as e:
        logger.warning("drill_down_params_invalid", error=str(e))
        return DrillDownState()
