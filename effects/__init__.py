"""
VOIDFX -- Effects Registry
Fixed-order pipeline of effect modules with a uniform interface.
Every effect is an object: effect.process(frame, width, height, params, scale_factor) -> frame
"""

from effects.base import Effect, as_rgba
from effects.dither import DitherEffect
from effects.glitch import GlitchEffect
from effects.halftone import HalftoneEffect
from effects.preprocess import PreProcessEffect

# Render order: prepare -> screen -> tone -> corrupt.
PIPELINE: list[Effect] = [
    PreProcessEffect(),
    HalftoneEffect(),
    DitherEffect(),
    GlitchEffect(),
]

# Master registry: effect_id -> instance
EFFECTS = {effect.effect_id: effect for effect in PIPELINE}


def get_effect(effect_id: str) -> Effect:
    """Get an effect by id.

    Raises ValueError if the effect doesn't exist.
    """
    if effect_id not in EFFECTS:
        available = ", ".join(EFFECTS.keys())
        raise ValueError(f"Unknown effect: {effect_id}. Available: {available}")
    return EFFECTS[effect_id]


def list_effects(category: str = None) -> list[dict]:
    """List all effects in pipeline order.

    Args:
        category: Optional filter, only return effects in this category.
    """
    results = []
    for effect in PIPELINE:
        if category and effect.category != category:
            continue
        results.append({
            "name": effect.effect_id,
            "title": effect.name,
            "description": effect.description,
            "params": effect.default_params(),
            "category": effect.category,
        })
    return results


def apply_effect(frame, effect_id: str, scale_factor: float = 1.0, frame_index: int = 0,
                 **params):
    """Apply one effect on the host path with defaults overlaid by ``params``."""
    effect = get_effect(effect_id)
    frame = as_rgba(frame)
    h, w = frame.shape[:2]
    merged = effect.merged(params)
    if effect.uses_frame_index:
        merged["frame_index"] = frame_index
    return effect.process(frame, w, h, merged, scale_factor)


def apply_chain(frame, effects_list: list[dict], scale_factor: float = 1.0,
                frame_index: int = 0):
    """Apply a chain of effects sequentially.

    effects_list: [{"name": "dither_v1", "params": {"algorithm": "bayer4"}}, ...]
    """
    from core.safety import validate_chain_depth
    validate_chain_depth(effects_list)

    for entry in effects_list:
        frame = apply_effect(frame, entry["name"], scale_factor=scale_factor,
                             frame_index=frame_index, **entry.get("params", {}))
    return frame
