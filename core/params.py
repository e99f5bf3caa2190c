"""
VOIDFX -- Parameter State
Per-effect parameter mappings owned by a processor session. Mutated only
through ``update``; renders read a frozen ``snapshot``.
"""

import copy
import logging
from types import MappingProxyType

logger = logging.getLogger(__name__)


class ParameterState:
    """Current parameters for every effect in a pipeline.

    Always holds every default key of every effect. Unknown effects or
    keys are rejected with ValueError.
    """

    def __init__(self, effects, overrides: dict | None = None):
        self._defaults = {e.effect_id: e.default_params() for e in effects}
        self._values = copy.deepcopy(self._defaults)
        self.revision = 0
        for effect_id, params in (overrides or {}).items():
            for key, value in params.items():
                self.update(effect_id, key, value)

    def _check(self, effect_id: str, key: str) -> None:
        if effect_id not in self._values:
            available = ", ".join(self._values)
            raise ValueError(f"Unknown effect: {effect_id}. Available: {available}")
        if key not in self._values[effect_id]:
            available = ", ".join(self._values[effect_id])
            raise ValueError(f"Unknown parameter '{key}' for {effect_id}. Available: {available}")

    def update(self, effect_id: str, key: str, value) -> None:
        self._check(effect_id, key)
        self._values[effect_id][key] = value
        self.revision += 1
        logger.debug("param %s.%s = %r (rev %d)", effect_id, key, value, self.revision)

    def get(self, effect_id: str, key: str):
        self._check(effect_id, key)
        return self._values[effect_id][key]

    def effect_params(self, effect_id: str) -> dict:
        """Copy of one effect's parameters."""
        if effect_id not in self._values:
            raise ValueError(f"Unknown effect: {effect_id}")
        return dict(self._values[effect_id])

    def reset(self, effect_id: str | None = None) -> None:
        """Restore defaults for one effect, or all of them."""
        if effect_id is None:
            self._values = copy.deepcopy(self._defaults)
        else:
            if effect_id not in self._defaults:
                raise ValueError(f"Unknown effect: {effect_id}")
            self._values[effect_id] = dict(self._defaults[effect_id])
        self.revision += 1

    def snapshot(self) -> MappingProxyType:
        """Read-only view of a copy of all parameters, taken once per render."""
        return MappingProxyType({
            effect_id: MappingProxyType(dict(values))
            for effect_id, values in self._values.items()
        })

    def to_dict(self) -> dict:
        return copy.deepcopy(self._values)
