"""Colour assignment for library and package nodes."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import randomcolor

from .models import DEFAULT_COLOR

logger = logging.getLogger(__name__)


class ColorPalette:
    """A fixed set of light colours handed out lazily, one per entity id.

    The palette is seeded so the same project renders with the same colours
    on every run.
    """

    def __init__(self, count: int, seed: Optional[int] = None):
        self._colors: List[str] = []
        if count > 0:
            generator = randomcolor.RandomColor(seed)
            self._colors = generator.generate(count=count, luminosity="light")
        self._assigned: Dict[str, str] = {}
        self._next = 0

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._assigned

    def get(self, entity_id: str) -> Optional[str]:
        return self._assigned.get(entity_id)

    def color_for(self, entity_id: str, inherit: Optional[str] = None) -> str:
        """Return the colour of *entity_id*, assigning one on first use.

        With *inherit*, a new entity takes the colour already assigned to
        that id instead of a fresh one.
        """
        color = self._assigned.get(entity_id)
        if color is not None:
            return color
        if inherit is not None and inherit in self._assigned:
            color = self._assigned[inherit]
        else:
            color = self._allocate()
        self._assigned[entity_id] = color
        return color

    def _allocate(self) -> str:
        if not self._colors:
            return DEFAULT_COLOR
        if self._next >= len(self._colors):
            logger.debug("Colour palette exhausted, reusing colours")
        color = self._colors[self._next % len(self._colors)]
        self._next += 1
        return color
