"""
Grid procedure naming conventions

Fetch procedures are named sp_Grid_<Entity>; their mutation companions are
sp_Grid_Insert_<Entity>, sp_Grid_Update_<Entity> and sp_Grid_Delete_<Entity>.
Hand-written companions often use a singular entity (sp_Grid_Buses ->
sp_Grid_Delete_Bus), so lookups try several candidates.
"""
import re
from typing import List

GRID_PREFIX = "sp_Grid_"
PROCEDURE_NAME_PATTERN = re.compile(r"sp_Grid_[a-zA-Z0-9_]+")

VERB_PREFIXES = {
    "insert": "sp_Grid_Insert_",
    "update": "sp_Grid_Update_",
    "delete": "sp_Grid_Delete_",
}


def is_valid_procedure_name(name: str) -> bool:
    return bool(name) and PROCEDURE_NAME_PATTERN.fullmatch(name) is not None


def fetch_procedure_name(entity: str) -> str:
    return GRID_PREFIX + entity


def insert_procedure_name(entity: str) -> str:
    return VERB_PREFIXES["insert"] + entity


def update_procedure_name(entity: str) -> str:
    return VERB_PREFIXES["update"] + entity


def delete_procedure_name(entity: str) -> str:
    return VERB_PREFIXES["delete"] + entity


def entity_from_procedure(grid_procedure: str) -> str:
    """sp_Grid_Bus_Aclines -> Bus_Aclines"""
    if grid_procedure.startswith(GRID_PREFIX):
        return grid_procedure[len(GRID_PREFIX):]
    return grid_procedure


def display_name_from_procedure(procedure_name: str) -> str:
    """Human label for breadcrumbs: strips the sp_Grid_ prefix."""
    return procedure_name.replace(GRID_PREFIX, "")


def singularize(word: str) -> str:
    """Strip a trailing 'es', else a trailing 's' unless the word ends in 'ss'."""
    if word.endswith("es"):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def derive_update_procedure_name(grid_procedure: str) -> str:
    """sp_Grid_Employees -> sp_Grid_Update_Employees"""
    return grid_procedure.replace(GRID_PREFIX, VERB_PREFIXES["update"], 1)


def derive_delete_procedure_name(grid_procedure: str) -> str:
    """sp_Grid_Buses -> sp_Grid_Delete_Bus"""
    last_part = entity_from_procedure(grid_procedure).split("_")[-1]
    return VERB_PREFIXES["delete"] + singularize(last_part)


def companion_candidates(grid_procedure: str, verb: str) -> List[str]:
    """
    Candidate companion procedure names for a grid, most specific first.

    1. the full entity (scaffolded procedures)
    2. the last entity part singularized by the es/s rule
    3. the last entity part with only a trailing 's' removed
    """
    prefix = VERB_PREFIXES[verb]
    entity = entity_from_procedure(grid_procedure)
    last_part = entity.split("_")[-1]

    candidates = [prefix + entity, prefix + singularize(last_part)]
    if last_part.endswith("s") and not last_part.endswith("ss"):
        candidates.append(prefix + last_part[:-1])

    unique = []
    for name in candidates:
        if name not in unique and name != prefix:
            unique.append(name)
    return unique
