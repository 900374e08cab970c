"""
Field precedence rules used when an incoming row meets a stored one.

The same policy tables drive both the MySQL upsert statements and the
pure-Python merge used to reason about (and test) the outcome. Upserts read
the incoming row through a row alias (MySQL 8.0.19+).
"""

from enum import Enum
from typing import Dict, Iterable, List


class FieldPolicy(str, Enum):
    """How a fetched value combines with the stored one."""

    FILL_IF_EMPTY = "fill_if_empty"  # stored non-null value wins
    REPLACE = "replace"  # fetched value wins unless absent
    FILL_IF_UNSET = "fill_if_unset"  # stored value wins unless null or zero


MOVIE_FIELD_POLICY: Dict[str, FieldPolicy] = {
    "title": FieldPolicy.FILL_IF_EMPTY,
    "fr_title": FieldPolicy.FILL_IF_EMPTY,
    "release_date": FieldPolicy.FILL_IF_EMPTY,
    "poster_path": FieldPolicy.FILL_IF_EMPTY,
    "backdrop_path": FieldPolicy.FILL_IF_EMPTY,
    "popularity": FieldPolicy.REPLACE,
    "budget": FieldPolicy.FILL_IF_UNSET,
    "runtime": FieldPolicy.FILL_IF_UNSET,
}

# A placeholder's weekend figures win over the canonical row's unless null
REVENUE_FIELD_POLICY: Dict[str, FieldPolicy] = {
    column: FieldPolicy.REPLACE
    for column in (
        "rank", "revenue_qc", "revenue_us", "theater_count",
        "cumulatif_qc_to_date", "cumulatif_us_to_date",
        "change_qc", "change_us", "week_count", "data_source",
    )
}

ROW_ALIAS = "new"


def merge_field(policy: FieldPolicy, existing, fetched):
    """Resolve one column according to its policy."""
    if policy is FieldPolicy.FILL_IF_EMPTY:
        return existing if existing is not None else fetched
    if policy is FieldPolicy.REPLACE:
        return fetched if fetched is not None else existing
    if policy is FieldPolicy.FILL_IF_UNSET:
        if existing is None or existing == 0:
            return fetched if fetched is not None else existing
        return existing
    raise ValueError(f"Unknown field policy: {policy}")


def merge_fields(
    existing: Dict[str, object],
    fetched: Dict[str, object],
    policy: Dict[str, FieldPolicy] = MOVIE_FIELD_POLICY,
) -> Dict[str, object]:
    """Merge a fetched row into a stored one. Columns without a policy are left untouched."""
    merged = dict(existing)
    for column, rule in policy.items():
        merged[column] = merge_field(rule, existing.get(column), fetched.get(column))
    return merged


def quote(column: str) -> str:
    return f"`{column}`"


def upsert_assignment(
    column: str,
    policy: FieldPolicy,
    table: str = "movies",
    alias: str = ROW_ALIAS,
) -> str:
    """SQL for one ON DUPLICATE KEY UPDATE assignment, reading the new row through its alias."""
    stored = f"{table}.{quote(column)}"
    incoming = f"{alias}.{quote(column)}"

    if policy is FieldPolicy.FILL_IF_EMPTY:
        return f"{quote(column)} = COALESCE({stored}, {incoming})"
    if policy is FieldPolicy.REPLACE:
        return f"{quote(column)} = COALESCE({incoming}, {stored})"
    if policy is FieldPolicy.FILL_IF_UNSET:
        return (
            f"{quote(column)} = CASE WHEN {stored} IS NULL OR {stored} = 0 "
            f"THEN COALESCE({incoming}, {stored}) ELSE {stored} END"
        )
    raise ValueError(f"Unknown field policy: {policy}")


def _update_clause(table: str, columns: List[str], policy: Dict[str, FieldPolicy]) -> str:
    assignments = ",\n    ".join(
        upsert_assignment(c, policy[c], table) for c in columns if c in policy
    )
    return f"ON DUPLICATE KEY UPDATE\n    {assignments}"


def build_upsert_sql(
    table: str,
    columns: Iterable[str],
    policy: Dict[str, FieldPolicy] = MOVIE_FIELD_POLICY,
) -> str:
    """Build a single INSERT ... ON DUPLICATE KEY UPDATE honoring the policy."""
    columns = list(columns)
    column_list = ", ".join(quote(c) for c in columns)
    placeholders = ", ".join(f":{c}" for c in columns)
    return (
        f"INSERT INTO {table} ({column_list})\n"
        f"VALUES ({placeholders}) AS {ROW_ALIAS}\n"
        f"{_update_clause(table, columns, policy)}"
    )


def build_upsert_from_select_sql(
    table: str,
    columns: Iterable[str],
    select_sql: str,
    policy: Dict[str, FieldPolicy],
) -> str:
    """
    Build an INSERT ... SELECT ... ON DUPLICATE KEY UPDATE honoring the policy.

    The SELECT is wrapped in a derived table named after the row alias, so
    the update clause reads the selected row the same way build_upsert_sql
    reads the VALUES row.
    """
    columns = list(columns)
    column_list = ", ".join(quote(c) for c in columns)
    return (
        f"INSERT INTO {table} ({column_list})\n"
        f"SELECT * FROM ({select_sql}) AS {ROW_ALIAS}\n"
        f"{_update_clause(table, columns, policy)}"
    )
