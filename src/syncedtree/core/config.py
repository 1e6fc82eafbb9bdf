"""Configuration classes for syncedtree.

This module defines the engine options and the default blob-store add
options used when the engine writes to the store.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, fields
from typing import Any, Optional, Union

# Options passed to BlobStore.add() by upload and CID materialization
ADD_CONFIG: dict[str, bool] = {"pin": False, "wrap_with_directory": False}

StopHook = Callable[[], Union[Awaitable[Any], Any]]

# Loose option spellings accepted by TreeOptions.from_mapping()
_ALIASES = {
    "autoStart": "auto_start",
    "onStop": "on_stop",
}


@dataclass
class TreeOptions:
    """Options for a SyncedTree engine.

    Attributes:
        auto_start: Start the engine from SyncedTree.create().
        load: Load persisted index state during start().
        on_stop: Optional teardown hook (sync or async) run first in stop().
    """

    auto_start: bool = True
    load: bool = True
    on_stop: Optional[StopHook] = None

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> TreeOptions:
        """Build options from a mapping.

        Accepts snake_case keys and the camelCase spellings autoStart/onStop.

        Raises:
            TypeError: On unknown option names.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for name, value in options.items():
            key = _ALIASES.get(name, name)
            if key not in known:
                raise TypeError(f"Unknown tree option: {name}")
            values[key] = value
        return cls(**values)

    @classmethod
    def coerce(cls, options: TreeOptions | Mapping[str, Any] | None) -> TreeOptions:
        """Normalize None, a mapping or a TreeOptions into TreeOptions."""
        if options is None:
            return cls()
        if isinstance(options, TreeOptions):
            return options
        return cls.from_mapping(options)
