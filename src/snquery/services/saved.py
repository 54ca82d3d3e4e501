"""Persistence of named, previously compiled filters."""

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from ..filter.condition import ConditionSet

DEFAULT_PATH = Path.home() / ".snquery" / "saved_filters.json"


@dataclass
class SavedFilter:
    id: str
    name: str
    table: str
    query: str
    description: str = ""
    conditions: List[Dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    last_used: Optional[datetime] = None
    use_count: int = 0
    is_favorite: bool = False

    def condition_set(self) -> ConditionSet:
        return ConditionSet.from_list(self.conditions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'table': self.table,
            'query': self.query,
            'conditions': self.conditions,
            'created_at': self.created_at.isoformat(),
            'last_used': self.last_used.isoformat() if self.last_used else None,
            'use_count': self.use_count,
            'is_favorite': self.is_favorite,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedFilter":
        last_used = data.get('last_used')
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            table=data.get('table', ''),
            query=data.get('query', ''),
            description=data.get('description', ''),
            conditions=list(data.get('conditions') or []),
            created_at=datetime.fromisoformat(data['created_at']) if data.get('created_at') else datetime.now(),
            last_used=datetime.fromisoformat(last_used) if last_used else None,
            use_count=int(data.get('use_count', 0)),
            is_favorite=bool(data.get('is_favorite', False)),
        )


class SavedFilterStore:
    """JSON file of saved filters.

    The file is re-read on every call, so several processes may share it.
    """

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path).expanduser() if path else DEFAULT_PATH

    def _load(self) -> List[SavedFilter]:
        if not self.path.exists():
            return []
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return [SavedFilter.from_dict(item) for item in data.get('filters', [])]

    def _write(self, filters: List[SavedFilter]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            'version': 1,
            'updated_at': datetime.now().isoformat(),
            'filters': [f.to_dict() for f in filters],
        }
        tmp = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp, 'w', encoding='utf-8') as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        tmp.replace(self.path)

    def save(self, name: str, table: str, query: str, description: str = "",
             conditions: Optional[ConditionSet] = None, is_favorite: bool = False) -> SavedFilter:
        """Store a compiled filter. A filter with the same name and table is replaced."""
        if not name.strip():
            raise ValueError("filter name is required")
        filters = [f for f in self._load() if not (f.name == name and f.table == table)]
        saved = SavedFilter(
            id=str(time.time_ns()),
            name=name,
            table=table,
            query=query,
            description=description,
            conditions=conditions.to_list() if conditions is not None else [],
            is_favorite=is_favorite,
        )
        filters.append(saved)
        self._write(filters)
        logger.info(f"saved filter '{name}' for {table}")
        return saved

    def list(self, table: Optional[str] = None) -> List[SavedFilter]:
        """Favourites first, then most recently used, then newest."""
        filters = self._load()
        if table:
            filters = [f for f in filters if f.table == table]

        def sort_key(f: SavedFilter):
            used = f.last_used.timestamp() if f.last_used else 0.0
            return (not f.is_favorite, -used, -f.created_at.timestamp())

        return sorted(filters, key=sort_key)

    def get(self, filter_id: str) -> Optional[SavedFilter]:
        for f in self._load():
            if f.id == filter_id:
                return f
        return None

    def search(self, text: str, table: Optional[str] = None) -> List[SavedFilter]:
        needle = text.lower()
        return [
            f for f in self.list(table)
            if needle in f.name.lower() or needle in f.description.lower() or needle in f.query.lower()
        ]

    def mark_used(self, filter_id: str) -> Optional[SavedFilter]:
        filters = self._load()
        found = None
        for f in filters:
            if f.id == filter_id:
                f.use_count += 1
                f.last_used = datetime.now()
                found = f
        if found is not None:
            self._write(filters)
        return found

    def set_favorite(self, filter_id: str, favorite: bool = True) -> bool:
        filters = self._load()
        changed = False
        for f in filters:
            if f.id == filter_id:
                f.is_favorite = favorite
                changed = True
        if changed:
            self._write(filters)
        return changed

    def delete(self, filter_id: str) -> bool:
        filters = self._load()
        remaining = [f for f in filters if f.id != filter_id]
        if len(remaining) == len(filters):
            return False
        self._write(remaining)
        logger.info(f"deleted saved filter {filter_id}")
        return True
