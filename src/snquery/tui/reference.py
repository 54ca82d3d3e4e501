"""Search-as-you-type lookup of reference field values.

Searches run on a thread pool and report back through a queue that the
builder drains on its own thread with :meth:`ReferenceResolver.poll`.
Every search carries a sequence number; results of superseded searches
are dropped.
"""

import queue
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from loguru import logger
from rich.console import Group
from rich.text import Text

from ..errors import NetworkError
from ..services.records import record_field
from . import keys
from .widgets import PickItem, PickList, TextInput

# Fields tried, in order, for a human readable label
DISPLAY_FIELDS = (
    "name",
    "title",
    "display_name",
    "short_description",
    "number",
    "user_name",
    "email",
)

MIN_SEARCH_LENGTH = 2
SEARCH_LIMIT = 20
SEARCH_TIMEOUT = 10.0


@dataclass(frozen=True)
class ReferenceCandidate:
    identifier: str
    display_label: str
    source_table: str


@dataclass(frozen=True)
class ReferenceSearchResult:
    """Message posted when a search finishes."""

    sequence: int
    table: str
    text: str
    candidates: Tuple[ReferenceCandidate, ...] = ()
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def candidate_from_record(record: Mapping[str, Any], table: str) -> ReferenceCandidate:
    identifier = record_field(record, "sys_id")
    label = ""
    for name in DISPLAY_FIELDS:
        label = record_field(record, name).strip()
        if label:
            break
    return ReferenceCandidate(identifier=identifier, display_label=label or identifier,
                              source_table=table)


def build_search_params(text: str, limit: int = SEARCH_LIMIT) -> Dict[str, str]:
    """Request parameters for a disjunctive CONTAINS search across display fields."""
    query = "^OR".join(f"{name}CONTAINS{text}" for name in DISPLAY_FIELDS)
    return {
        "sysparm_query": query,
        "sysparm_limit": str(limit),
        "sysparm_fields": ",".join(("sys_id",) + DISPLAY_FIELDS),
        "sysparm_display_value": "all",
    }


class ReferenceResolver:
    """Debounced background search against a record source."""

    def __init__(self, source=None, min_length: int = MIN_SEARCH_LENGTH,
                 limit: int = SEARCH_LIMIT, timeout: float = SEARCH_TIMEOUT,
                 debounce: float = 0.0, executor: Optional[Executor] = None):
        self.source = source
        self.min_length = min_length
        self.limit = limit
        self.timeout = timeout
        self.debounce = debounce
        self.inbox: "queue.Queue[ReferenceSearchResult]" = queue.Queue()
        self._executor = executor
        self._owns_executor = executor is None
        self._lock = threading.Lock()
        self._sequence = 0

    @property
    def sequence(self) -> int:
        with self._lock:
            return self._sequence

    def _next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def cancel(self) -> None:
        """Invalidate every outstanding search."""
        self._next_sequence()

    def search(self, table: str, text: str) -> Optional[int]:
        """Start a search; returns its sequence number, or None if none was issued.

        Text shorter than the minimum length or a missing source never
        reaches the network, but still supersedes older searches.
        """
        seq = self._next_sequence()
        needle = text.strip()
        if self.source is None or len(needle) < self.min_length:
            return None
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="snquery-ref")
        self._executor.submit(self._run, seq, table, needle)
        return seq

    def _run(self, seq: int, table: str, text: str) -> None:
        if self.debounce:
            time.sleep(self.debounce)
        if seq != self.sequence:
            logger.debug(f"reference search #{seq} superseded before sending")
            return
        try:
            records = self.source.list(table, build_search_params(text, self.limit),
                                       timeout=self.timeout)
        except NetworkError as e:
            self.inbox.put(ReferenceSearchResult(seq, table, text, error=e))
            return
        except Exception as e:
            logger.warning(f"reference search on {table} failed: {e}")
            self.inbox.put(ReferenceSearchResult(seq, table, text, error=NetworkError(table, e)))
            return
        candidates = tuple(candidate_from_record(r, table) for r in records[: self.limit])
        self.inbox.put(ReferenceSearchResult(seq, table, text, candidates=candidates))

    def poll(self) -> List[ReferenceSearchResult]:
        """Drain finished searches, keeping only the most recent one."""
        current = self.sequence
        fresh = []
        while True:
            try:
                result = self.inbox.get_nowait()
            except queue.Empty:
                break
            if result.sequence != current:
                logger.debug(f"dropping stale reference result #{result.sequence} (current #{current})")
                continue
            fresh.append(result)
        return fresh

    def shutdown(self) -> None:
        self.cancel()
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=False)
            self._executor = None


class ReferencePicker:
    """Search box plus candidate list for one reference field."""

    def __init__(self, resolver: ReferenceResolver, max_visible: int = 10):
        self.resolver = resolver
        self.input = TextInput(placeholder="Type at least 2 characters to search")
        self.results = PickList(max_visible=max_visible)
        self.table = ""
        self.candidates: List[ReferenceCandidate] = []
        self.focus_list = False
        self.searching = False
        self.error = ""
        self.value = ""
        self.label = ""
        self.completed = False
        self._active = False

    def activate(self, table: str) -> None:
        self.table = table
        self.input.reset()
        self.results.set_items([])
        self.candidates = []
        self.focus_list = False
        self.searching = False
        self.error = ""
        self.value = ""
        self.label = ""
        self.completed = False
        self._active = True

    def deactivate(self) -> None:
        self._active = False
        self.resolver.cancel()

    def is_active(self) -> bool:
        return self._active

    def update(self, key: str) -> None:
        if not self._active:
            return
        if key == keys.ESC:
            self.completed = False
            self.deactivate()
        elif key == keys.ENTER:
            self._confirm()
        elif key == keys.TAB:
            if self.candidates:
                self.focus_list = not self.focus_list
        elif self.focus_list and key in (keys.UP, keys.DOWN, keys.PGUP, keys.PGDOWN, "j", "k"):
            self.results.handle_key(key)
        elif key in (keys.UP, keys.DOWN) and self.candidates:
            self.results.handle_key(key)
        else:
            before = self.input.value
            if self.input.handle_key(key) and self.input.value != before:
                self.focus_list = False
                self._start_search()

    def _start_search(self) -> None:
        self.error = ""
        seq = self.resolver.search(self.table, self.input.value)
        self.searching = seq is not None
        if seq is None:
            self.candidates = []
            self.results.set_items([])

    def handle_result(self, result: ReferenceSearchResult) -> None:
        self.searching = False
        if not result.ok:
            self.error = f"Search failed: {result.error}"
            self.candidates = []
            self.results.set_items([])
            return
        self.error = ""
        self.candidates = list(result.candidates)
        self.results.set_items([
            PickItem(c.display_label, c.identifier, c) for c in self.candidates
        ])

    def _confirm(self) -> None:
        item = self.results.selected()
        if item is not None:
            candidate = item.value
            self.value = candidate.identifier
            self.label = candidate.display_label
        elif self.input.value.strip():
            # no candidates: take the typed text as-is
            self.value = self.input.value.strip()
            self.label = self.value
        else:
            self.error = "Type a value to search or enter manually"
            return
        self.completed = True
        self.deactivate()

    def view(self) -> Group:
        parts = [
            Text(f"🔗 Search {self.table}", style="bold magenta"),
            Text("Search: ", style="dim") + self.input.view(focused=not self.focus_list),
        ]
        if self.searching:
            parts.append(Text("Searching...", style="yellow"))
        if self.error:
            parts.append(Text(self.error, style="bold red"))
        if self.candidates:
            parts.append(self.results.view())
        elif len(self.input.value.strip()) >= self.resolver.min_length and not self.searching:
            parts.append(Text("No matches. Enter uses the typed text.", style="dim"))
        parts.append(Text("tab focus list • enter select • esc back", style="dim"))
        return Group(*parts)
