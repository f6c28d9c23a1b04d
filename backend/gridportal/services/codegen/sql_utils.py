"""
SQL text helpers for procedure generation
"""
import re
from typing import Iterable

ENTITY_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def quote_ident(name: str) -> str:
    """Quote an identifier the way PostgreSQL's quote_ident does for mixed case."""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def qualified_table(schema: str, table: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(table)}"


def title_case(name: str) -> str:
    """snake_case to Title Case, matching PostgreSQL initcap(replace(name, '_', ' '))."""
    words = name.replace("_", " ").split(" ")
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def dollar_quote(body: str, tag: str = "JSON") -> str:
    """Wrap a literal in a dollar-quoted string, picking a tag that does not occur in the body."""
    candidate = tag
    counter = 0
    while f"${candidate}$" in body:
        counter += 1
        candidate = f"{tag}{counter}"
    return f"${candidate}${body}${candidate}$"


def literal_list(values: Iterable[str]) -> str:
    return ", ".join(quote_literal(v) for v in values)


def render(template: str, **values: str) -> str:
    """Substitute {{KEY}} placeholders."""
    result = template
    for key, value in values.items():
        result = result.replace("{{" + key + "}}", value)
    return result
