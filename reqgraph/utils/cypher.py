"""Helpers for running Cypher inside a managed transaction."""

from typing import Any, Optional

from neo4j import AsyncManagedTransaction


async def fetch_all(tx: AsyncManagedTransaction, query: str, parameters: dict[str, Any]) -> list[dict[str, Any]]:
    """Run a statement and materialize every row inside the transaction."""
    result = await tx.run(query, parameters)
    return await result.data()


async def fetch_one(tx: AsyncManagedTransaction, query: str, parameters: dict[str, Any]) -> Optional[dict[str, Any]]:
    rows = await fetch_all(tx, query, parameters)
    return rows[0] if rows else None


async def execute(tx: AsyncManagedTransaction, query: str, parameters: dict[str, Any]) -> Any:
    """Run a statement for its side effects and return the update counters."""
    result = await tx.run(query, parameters)
    summary = await result.consume()
    return summary.counters


def set_clause(alias: str, changes: dict[str, Any]) -> str:
    """``alias.key = $key`` assignments for the given property map.

    Keys come from model aliases, never from caller input.
    """
    return ", ".join(f"{alias}.{key} = ${key}" for key in changes)


def with_assignments(query: str, alias: str, changes: dict[str, Any]) -> str:
    """Fill the ``{assignments}`` slot of an update statement."""
    return query.replace("{assignments}", set_clause(alias, changes))
