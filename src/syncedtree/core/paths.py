"""Pure helpers for logical paths and identifiers."""

from __future__ import annotations

import locale
from functools import cmp_to_key
from typing import TYPE_CHECKING

from syncedtree.core.cid import Cid
from syncedtree.core.types import InvalidIdentifierError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from syncedtree.core.cid import CidCodec
    from syncedtree.stores.blobstore import AddResult

# Sentinel path of the tree root
ROOT_PATH = "/r"


def remove_slash(path: str) -> str:
    """Strip a single leading slash."""
    return path[1:] if path.startswith("/") else path


def join_path(parent: str, name: str) -> str:
    """Join a parent path and a child name."""
    return f"{parent}/{name}"


def parent_path(path: str) -> str:
    """Return everything before the last slash ('' for top-level names)."""
    return path[: max(path.rfind("/"), 0)]


def base_name(path: str) -> str:
    """Return everything after the last slash."""
    return path[path.rfind("/") + 1 :]


def compare_names(one: str, two: str) -> int:
    """Locale-aware, case-insensitive comparison of two names."""
    return locale.strcoll(one.lower(), two.lower())


name_sort_key = cmp_to_key(compare_names)


def sort_names(names: Iterable[str]) -> list[str]:
    """Sort names case-insensitively.

    >>> sort_names(["Zebra", "apple"])
    ['apple', 'Zebra']
    """
    return sorted(names, key=name_sort_key)


def valid_cid(text: object, codec: CidCodec = Cid) -> bool:
    """Check whether text parses as an identifier."""
    try:
        codec.parse(text)  # type: ignore[arg-type]
    except InvalidIdentifierError:
        return False
    return True


def read_cid(result: AddResult | None) -> Cid | None:
    """Extract the identifier from an add result, if any."""
    return result.cid if result else None
