"""
Pool accounts module - binds certificate identities to reusable Unix accounts.
"""

from .store import MappingStore, PoolEntry, parse_table, format_table
from .allocator import PoolAllocator

__all__ = ["MappingStore", "PoolEntry", "parse_table", "format_table", "PoolAllocator"]
