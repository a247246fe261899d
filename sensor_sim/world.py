from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
import json
import logging

import numpy as np

from .geometry_utils import ray_horizontal_rect_distance
from .scene_graph import PlaneNode, SceneGraph


logger = logging.getLogger(__name__)

GROUND_ID = "ground"


@dataclass
class WorldBounds:
    """Axis-aligned extent of the world.

    The ground plane spans [x_min, x_max] x [z_min, z_max] at height y_min.

    Attributes
    ----------
    x_min, x_max : float
        Lateral extent (meters).
    y_min, y_max : float
        Vertical extent (meters); y_min is the ground height.
    z_min, z_max : float
        Depth extent (meters).
    """

    x_min: float
    x_max: float
    y_min: float
    y_max: float
    z_min: float
    z_max: float

    def __post_init__(self) -> None:
        if self.x_max <= self.x_min or self.z_max <= self.z_min:
            raise ValueError(f"Degenerate world bounds: {self}")

    @property
    def size_x(self) -> float:
        return self.x_max - self.x_min

    @property
    def size_z(self) -> float:
        return self.z_max - self.z_min

    @property
    def center(self) -> np.ndarray:
        """Center of the ground rectangle (x, y_min, z)."""
        return np.array(
            [(self.x_min + self.x_max) / 2.0, self.y_min, (self.z_min + self.z_max) / 2.0]
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "xMin": self.x_min,
            "xMax": self.x_max,
            "yMin": self.y_min,
            "yMax": self.y_max,
            "zMin": self.z_min,
            "zMax": self.z_max,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorldBounds":
        return cls(
            x_min=float(data["xMin"]),
            x_max=float(data["xMax"]),
            y_min=float(data["yMin"]),
            y_max=float(data["yMax"]),
            z_min=float(data["zMin"]),
            z_max=float(data["zMax"]),
        )


@dataclass(frozen=True)
class GroundPlane:
    """Finite, double-sided ground rectangle used as a collidable surface."""

    y: float
    x_min: float
    x_max: float
    z_min: float
    z_max: float

    @property
    def id(self) -> str:
        return GROUND_ID

    def intersect(self, origin: np.ndarray, direction: np.ndarray) -> Optional[float]:
        return ray_horizontal_rect_distance(
            origin, direction, self.y, self.x_min, self.x_max, self.z_min, self.z_max
        )


class World:
    """World model: bounds plus the ground surface.

    Parameters
    ----------
    scene : SceneGraph, optional
        Scene that receives the ground plane visual. A private one is created if omitted.
    bounds : WorldBounds, optional
        Initial bounds. The world stays uninitialized (no ground) when omitted.
    """

    def __init__(
        self,
        scene: Optional[SceneGraph] = None,
        bounds: Optional[WorldBounds] = None,
    ) -> None:
        self.scene = scene if scene is not None else SceneGraph()
        self._bounds: Optional[WorldBounds] = None
        self._ground: Optional[GroundPlane] = None
        self._floor_node: Optional[PlaneNode] = None
        if bounds is not None:
            self.init_world(bounds)

    # ------------------------------------------------------------------
    # Loading / serialization
    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, data: Mapping[str, Any], scene: Optional[SceneGraph] = None) -> "World":
        """Create world from an {xMin, xMax, ...} bounds dict."""
        return cls(scene=scene, bounds=WorldBounds.from_dict(data))

    @classmethod
    def from_file(cls, path: str, scene: Optional[SceneGraph] = None) -> "World":
        """Create world from a JSON bounds file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data, scene=scene)

    def to_dict(self) -> Optional[Dict[str, float]]:
        return self._bounds.to_dict() if self._bounds is not None else None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------
    def reset(self) -> None:
        """Drop bounds and ground, returning the world to its uninitialized state."""
        if self._floor_node is not None:
            self.scene.dispose(self._floor_node)
            self._floor_node = None
        self._bounds = None
        self._ground = None

    def init_world(self, bounds: WorldBounds) -> None:
        """Replace bounds wholesale and rebuild the ground surface."""
        if self._floor_node is not None:
            self.scene.dispose(self._floor_node)
            self._floor_node = None

        self._bounds = WorldBounds(**vars(bounds))
        self._ground = GroundPlane(
            y=bounds.y_min,
            x_min=bounds.x_min,
            x_max=bounds.x_max,
            z_min=bounds.z_min,
            z_max=bounds.z_max,
        )
        self._floor_node = PlaneNode(
            name="floor",
            owner=GROUND_ID,
            width=bounds.size_x,
            depth=bounds.size_z,
            position=bounds.center,
            color=(204, 204, 204),
        )
        self.scene.add(self._floor_node)
        logger.debug("World initialized with bounds %s", bounds)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def is_initialized(self) -> bool:
        return self._bounds is not None

    def get_bounds(self) -> Optional[WorldBounds]:
        return self._bounds

    def get_ground(self) -> Optional[GroundPlane]:
        return self._ground

    @property
    def floor_node(self) -> Optional[PlaneNode]:
        return self._floor_node

    def contains(self, x: float, z: float) -> bool:
        """Return True if (x, z) lies over the ground rectangle."""
        if self._bounds is None:
            return False
        b = self._bounds
        return b.x_min <= x <= b.x_max and b.z_min <= z <= b.z_max
