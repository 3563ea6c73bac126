"""Persistence backends for polar tables.

The coordinator talks to a ``TableStore``; which backend is wired in does
not change how tables are recorded or queried.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .const import STORAGE_KEY_INDEX, STORAGE_KEY_TABLE, STORAGE_VERSION
from .table import PolarTable

_LOGGER = logging.getLogger(__name__)


class TableStore(Protocol):
    async def async_load(self, table_id: str) -> Optional[PolarTable]: ...

    async def async_save(self, table_id: str, table: PolarTable) -> None: ...

    async def async_list_tables(self) -> list[str]: ...

    async def async_delete(self, table_id: str) -> None: ...

    async def async_get_active(self) -> Optional[str]: ...

    async def async_set_active(self, table_id: Optional[str]) -> None: ...


class HassTableStore:
    """One JSON file per table under ``.storage`` plus an index file."""

    def __init__(self, hass: HomeAssistant) -> None:
        self.hass = hass
        self._index_store: Store[dict[str, Any]] = Store(hass, STORAGE_VERSION, STORAGE_KEY_INDEX)
        self._index: Optional[dict[str, Any]] = None
        self._stores: dict[str, Store[dict[str, Any]]] = {}

    def _table_store(self, table_id: str) -> Store[dict[str, Any]]:
        if table_id not in self._stores:
            self._stores[table_id] = Store(
                self.hass, STORAGE_VERSION, STORAGE_KEY_TABLE.format(table_id)
            )
        return self._stores[table_id]

    async def _async_index(self) -> dict[str, Any]:
        if self._index is None:
            data = await self._index_store.async_load() or {}
            self._index = {"tables": list(data.get("tables", [])), "active": data.get("active")}
        return self._index

    async def async_load(self, table_id: str) -> Optional[PolarTable]:
        data = await self._table_store(table_id).async_load()
        if not data:
            _LOGGER.debug("Polar table %s listed but not stored", table_id)
            return None
        return PolarTable.from_dict(data)

    async def async_save(self, table_id: str, table: PolarTable) -> None:
        await self._table_store(table_id).async_save(table.as_dict())
        index = await self._async_index()
        if table_id not in index["tables"]:
            index["tables"].append(table_id)
            await self._index_store.async_save(index)

    async def async_list_tables(self) -> list[str]:
        return list((await self._async_index())["tables"])

    async def async_delete(self, table_id: str) -> None:
        await self._table_store(table_id).async_remove()
        self._stores.pop(table_id, None)
        index = await self._async_index()
        if table_id in index["tables"]:
            index["tables"].remove(table_id)
        if index["active"] == table_id:
            index["active"] = None
        await self._index_store.async_save(index)

    async def async_get_active(self) -> Optional[str]:
        return (await self._async_index())["active"]

    async def async_set_active(self, table_id: Optional[str]) -> None:
        index = await self._async_index()
        index["active"] = table_id
        await self._index_store.async_save(index)


class MemoryTableStore:
    """Volatile backend; tables live only as long as the process."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, Any]] = {}
        self.active: Optional[str] = None

    async def async_load(self, table_id: str) -> Optional[PolarTable]:
        data = self.tables.get(table_id)
        return None if data is None else PolarTable.from_dict(data)

    async def async_save(self, table_id: str, table: PolarTable) -> None:
        self.tables[table_id] = table.as_dict()

    async def async_list_tables(self) -> list[str]:
        return list(self.tables)

    async def async_delete(self, table_id: str) -> None:
        self.tables.pop(table_id, None)
        if self.active == table_id:
            self.active = None

    async def async_get_active(self) -> Optional[str]:
        return self.active

    async def async_set_active(self, table_id: Optional[str]) -> None:
        self.active = table_id
