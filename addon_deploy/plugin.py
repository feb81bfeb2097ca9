"""Assemble the controllers and background routines of an agent feature.

A feature is a plain structure built once at startup. Starting it starts its
controllers and spawns its routines, closing it stops both.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
import logging
from typing import Any

__all__ = [
    "AgentFeature",
    "Controller",
    "Routine",
]

_LOGGER = logging.getLogger(__name__)

Routine = Callable[[], Coroutine[Any, Any, None]]
"""A long running background coroutine, cancelled when the feature closes."""


class Controller(ABC):
    """A controller started and stopped by a feature."""

    @abstractmethod
    def start(self) -> None:
        """Start processing."""

    @abstractmethod
    async def close(self) -> None:
        """Stop processing and release resources."""


@dataclass
class AgentFeature:
    """A named set of controllers with optional background routines."""

    name: str
    controllers: list[Controller]
    routines: list[Routine] = field(default_factory=list)
    _tasks: list[asyncio.Task[None]] = field(default_factory=list, init=False, repr=False)

    def start(self) -> None:
        """Start the controllers and spawn the routines."""
        _LOGGER.info(
            "Starting feature %s with %d controllers and %d routines",
            self.name,
            len(self.controllers),
            len(self.routines),
        )
        for controller in self.controllers:
            controller.start()
        for index, routine in enumerate(self.routines):
            self._tasks.append(
                asyncio.create_task(routine(), name=f"{self.name}-routine-{index}")
            )

    async def close(self) -> None:
        """Cancel the routines and close the controllers."""
        _LOGGER.info("Closing feature %s", self.name)
        for task in self._tasks:
            task.cancel()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                _LOGGER.error("Routine of feature %s failed: %s", self.name, result)
        self._tasks.clear()
        for controller in self.controllers:
            await controller.close()
