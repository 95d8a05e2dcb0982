from __future__ import annotations

from typing import Any

from sqlalchemy import MetaData


def include_object(object: Any, name: str, type_: str, reflected: bool, compare_to: Any) -> bool:
  """Keep autogenerate from dropping objects the ORM does not declare."""
  if type_ == "table" and reflected and compare_to is None:
    return False

  if type_ == "column" and reflected and compare_to is None:
    return False

  return True


def build_migration_context_options(*, target_metadata: MetaData) -> dict[str, Any]:
  """Shared Alembic context options for offline and online runs."""
  return {
    "compare_type": True,
    "compare_server_default": True,
    "transaction_per_migration": True,
    "include_object": include_object,
    "target_metadata": target_metadata,
  }
