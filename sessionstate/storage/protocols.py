"""
Store Protocol Definitions

Structural subtyping protocol (PEP 544) for the remote-store capability the
session lock protocol consumes. Anything that can open itself, run a
registered server-side script atomically and execute a MULTI/EXEC batch
satisfies it.

Design Principles:
    - Zero-exception control flow via Result[T, E] monad
    - Async-first for non-blocking I/O
    - The capability knows nothing about sessions or locks
"""

from __future__ import annotations

from typing import (
    Any,
    Callable,
    Dict,
    Mapping,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

from sessionstate.core.errors import StoreError
from sessionstate.core.types import Result

# Wire-level argument accepted by scripts and commands
ScriptArg = Union[str, bytes, int]


@runtime_checkable
class StoreConnection(Protocol):
    """
    Remote store capability.

    Contract:
        - open() must be awaited once before any other operation
        - run_script() executes a script registered at open() atomically
        - transaction() queues commands on a MULTI/EXEC pipeline and
          returns the replies in order
    """

    @property
    def is_open(self) -> bool:
        ...

    async def open(self) -> Result[None, StoreError]:
        """Connect and register scripts."""
        ...

    async def close(self) -> None:
        """Release pooled connections. Safe to call multiple times."""
        ...

    async def run_script(
        self,
        name: str,
        keys: Sequence[str],
        args: Sequence[ScriptArg],
    ) -> Result[Any, StoreError]:
        """Run the named script with KEYS and ARGV."""
        ...

    async def transaction(
        self,
        operation: str,
        build: Callable[[Any], None],
    ) -> Result[list[Any], StoreError]:
        """Queue commands via ``build(pipe)`` and execute them atomically."""
        ...

    async def health_check(self) -> Result[Dict[str, Any], StoreError]:
        """Round-trip to the store and report server facts."""
        ...


# Scripts are registered by name at open() time
ScriptRegistry = Mapping[str, str]


__all__ = ["ScriptArg", "ScriptRegistry", "StoreConnection"]
