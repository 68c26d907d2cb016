import json
import logging
import threading
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Union

from models.rates import RateTable
from .errors import OverlappingPeriodError, RateNotFoundError

logger = logging.getLogger(__name__)


class RateTableRegistry:
    """Append-only history of effective-dated rate tables.

    Every rate read in the engine goes through lookup(); tables are never
    edited or removed once registered.
    """

    def __init__(self, tables: Optional[Iterable[RateTable]] = None):
        self._tables: List[RateTable] = []
        self._lock = threading.Lock()
        for table in tables or []:
            self.register(table)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'RateTableRegistry':
        """Load table history from a JSON document with a 'tables' list"""
        with open(path, encoding='utf-8') as f:
            data = json.load(f)
        registry = cls(RateTable.from_dict(entry) for entry in data['tables'])
        logger.info("Loaded %d rate tables from %s", len(registry.tables()), path)
        return registry

    def register(self, table: RateTable) -> RateTable:
        with self._lock:
            for existing in self._tables:
                if existing.version == table.version:
                    raise OverlappingPeriodError(f"Rate table version {table.version} already registered")
                if existing.overlaps(table):
                    raise OverlappingPeriodError(
                        f"Rate table {table.version} ({table.effective_from} - {table.effective_to or 'open'}) "
                        f"overlaps {existing.version} ({existing.effective_from} - {existing.effective_to or 'open'})"
                    )
            self._tables.append(table)
            self._tables.sort(key=lambda t: t.effective_from)
        logger.debug("Registered rate table %s", table.version)
        return table

    def lookup(self, as_of: date) -> RateTable:
        with self._lock:
            for table in self._tables:
                if table.covers(as_of):
                    return table
        raise RateNotFoundError(f"No rate table effective on {as_of.isoformat()}")

    def get(self, version: str) -> RateTable:
        """Table by version, used to reproduce historical records"""
        with self._lock:
            for table in self._tables:
                if table.version == version:
                    return table
        raise RateNotFoundError(f"Unknown rate table version {version}")

    def tables(self) -> List[RateTable]:
        with self._lock:
            return list(self._tables)
