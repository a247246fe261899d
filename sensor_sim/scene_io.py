"""
Scene save/load.

A scene file is a JSON object::

    {
      "world": {"xMin": 0, "xMax": 30, "yMin": 0, "yMax": 5, "zMin": 0, "zMax": 30},
      "obstacles": [{"id": ..., "position": {...}, "dimensions": {...}}],
      "sensors": [{"id": ..., "definitionId": ..., "position": {...},
                   "rotation": {...}, "visible": true}]
    }

``world`` may be null when the world was never initialized.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping
import json
import logging

from .obstacles import ObstacleRegistry
from .sensors import SensorRegistry
from .world import World, WorldBounds


logger = logging.getLogger(__name__)


def scene_to_dict(world: World, obstacles: ObstacleRegistry, sensors: SensorRegistry) -> Dict[str, Any]:
    return {
        "world": world.to_dict(),
        "obstacles": obstacles.serialize(),
        "sensors": sensors.serialize(),
    }


def save_scene(path: str, world: World, obstacles: ObstacleRegistry, sensors: SensorRegistry) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(scene_to_dict(world, obstacles, sensors), f, indent=2)
    logger.info("Scene saved to %s", path)


def apply_scene_dict(
    data: Mapping[str, Any],
    world: World,
    obstacles: ObstacleRegistry,
    sensors: SensorRegistry,
) -> None:
    """Clear both registries, then rebuild world, obstacles and sensors from data.

    A null or missing ``world`` resets the world to uninitialized (no ground).

    Sensor definitions must already be loaded: instances whose definition is
    unknown are skipped.
    """
    # Validate bounds before touching anything
    world_data = data.get("world")
    bounds = WorldBounds.from_dict(world_data) if world_data else None

    obstacles.clear()
    sensors.clear()
    if bounds is not None:
        world.init_world(bounds)
    else:
        world.reset()
    obstacles.deserialize(data.get("obstacles") or [])
    sensors.deserialize(data.get("sensors") or [])


def load_scene(
    path: str,
    world: World,
    obstacles: ObstacleRegistry,
    sensors: SensorRegistry,
) -> bool:
    """Load a scene file. Returns False, leaving everything untouched, if it cannot be parsed."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, Mapping):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        apply_scene_dict(data, world, obstacles, sensors)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.error("Error loading scene from %s: %s", path, exc)
        return False
    logger.info("Scene loaded from %s", path)
    return True
