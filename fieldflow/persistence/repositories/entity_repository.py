"""Read-only access to the CRM entity tables the handlers look at.

Entity rows are owned by the sync pipeline, not by this package, so they are
queried with plain SQL over a fixed type→table mapping instead of ORM models.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.config import ENTITY_SCHEMA
from fieldflow.errors import HandlerError

logger = logging.getLogger(__name__)

ENTITY_TABLES: Dict[str, str] = {
    "customer": "customers",
    "job": "jobs",
    "invoice": "invoices",
    "estimate": "estimates",
    "location": "locations",
}

CONTACT_COLUMNS = frozenset({"phone", "email"})


def _qualified(table: str, schema: str) -> str:
    return f"{schema}.{table}" if schema else table


class EntityRepository:
    def __init__(self, session: AsyncSession, schema: str = ENTITY_SCHEMA):
        self.session = session
        self.schema = schema

    def table_for(self, entity_type: Optional[str]) -> Optional[str]:
        table = ENTITY_TABLES.get(entity_type or "")
        return _qualified(table, self.schema) if table else None

    async def fetch(
        self,
        entity_type: Optional[str],
        entity_id: Any,
        *,
        strict: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Return the live row for an entity as a dict, or None."""
        table = self.table_for(entity_type)
        if table is None:
            if strict:
                raise HandlerError(f"Unknown entity type: {entity_type}")
            return None
        if entity_id is None:
            return None

        res = await self.session.execute(
            text(f"SELECT * FROM {table} WHERE st_id = :entity_id"),
            {"entity_id": str(entity_id)},
        )
        row = res.mappings().first()
        return dict(row) if row is not None else None

    async def customer_contact(self, customer_id: Any, column: str) -> Optional[str]:
        """Phone number or email address of a customer."""
        if column not in CONTACT_COLUMNS:
            raise ValueError(f"Unsupported contact column: {column}")
        if customer_id is None:
            return None
        table = _qualified(ENTITY_TABLES["customer"], self.schema)
        res = await self.session.execute(
            text(f"SELECT {column} FROM {table} WHERE st_id = :customer_id"),
            {"customer_id": str(customer_id)},
        )
        value = res.scalar_one_or_none()
        return value or None


class CrmContactRepository:
    """CRM contacts keyed by their customer id."""

    def __init__(self, session: AsyncSession, schema: str = ""):
        self.session = session
        self.table = _qualified("contacts", schema)

    async def find_contact_id(self, customer_id: Any) -> Optional[Any]:
        if customer_id is None:
            return None
        res = await self.session.execute(
            text(f"SELECT id FROM {self.table} WHERE st_customer_id = :customer_id LIMIT 1"),
            {"customer_id": str(customer_id)},
        )
        return res.scalar_one_or_none()

    async def set_stage(self, contact_id: Any, stage: str) -> None:
        await self.session.execute(
            text(
                f"UPDATE {self.table} SET custom_stage = :stage, "
                "updated_at = CURRENT_TIMESTAMP WHERE id = :contact_id"
            ),
            {"stage": stage, "contact_id": contact_id},
        )
        await self.session.commit()
