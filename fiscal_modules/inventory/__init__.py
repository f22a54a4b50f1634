"""Inventory module: product catalog and stock movements."""

from fiscal_modules.inventory.service import SqlCatalog, SqlInventory

__all__ = ["SqlCatalog", "SqlInventory"]
