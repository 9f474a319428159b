"""
Filter/action registry used as the extension point for exports and imports.

Filters receive a value and return a (possibly modified) value; actions are
fire-and-forget notifications. Callbacks run in ascending priority order,
then in registration order.
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)


class HookRegistry:
    """Explicit subscription registry for filters and actions."""

    def __init__(self):
        self._filters: Dict[str, List[Tuple[int, int, Callable]]] = defaultdict(list)
        self._actions: Dict[str, List[Tuple[int, int, Callable]]] = defaultdict(list)
        self._sequence = 0

    def _add(self, table, name: str, callback: Callable, priority: int) -> None:
        self._sequence += 1
        table[name].append((priority, self._sequence, callback))
        table[name].sort(key=lambda entry: (entry[0], entry[1]))

    def add_filter(self, name: str, callback: Callable, priority: int = 10) -> None:
        """Subscribe a filter callback."""
        self._add(self._filters, name, callback, priority)

    def add_action(self, name: str, callback: Callable, priority: int = 10) -> None:
        """Subscribe an action callback."""
        self._add(self._actions, name, callback, priority)

    def remove_all(self, name: str) -> None:
        self._filters.pop(name, None)
        self._actions.pop(name, None)

    def has_filter(self, name: str) -> bool:
        return bool(self._filters.get(name))

    def has_action(self, name: str) -> bool:
        return bool(self._actions.get(name))

    def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        """
        Pass a value through every filter registered under a name.

        Args:
            name: Filter name
            value: Initial value
            *args: Extra context passed to each callback

        Returns:
            The filtered value
        """
        for _, _, callback in self._filters.get(name, []):
            value = callback(value, *args)
        return value

    def do_action(self, name: str, *args: Any) -> None:
        """
        Notify every action callback registered under a name.

        A failing callback is logged and does not stop the remaining ones.
        """
        for _, _, callback in self._actions.get(name, []):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Action '{name}' callback {callback!r} failed: {e}")
