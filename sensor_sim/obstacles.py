from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging

import numpy as np

from .geometry_utils import Vec3, Vec3Like, as_vec3, ray_aabb_distance
from .scene_graph import BoxNode, SceneGraph


logger = logging.getLogger(__name__)


@dataclass
class Dimensions:
    """Box extent along X (width), Y (height) and Z (depth), in meters."""

    width: float
    height: float
    depth: float

    def __post_init__(self) -> None:
        if self.width <= 0.0 or self.height <= 0.0 or self.depth <= 0.0:
            raise ValueError(f"Obstacle dimensions must be positive, got {self}")

    def copy(self) -> "Dimensions":
        return Dimensions(self.width, self.height, self.depth)

    def to_dict(self) -> Dict[str, float]:
        return {"width": self.width, "height": self.height, "depth": self.depth}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Dimensions":
        return cls(float(data["width"]), float(data["height"]), float(data["depth"]))


DimensionsLike = Union[Dimensions, Tuple[float, float, float], Mapping[str, Any]]


def as_dimensions(value: DimensionsLike) -> Dimensions:
    if isinstance(value, Dimensions):
        return value.copy()
    if isinstance(value, Mapping):
        return Dimensions.from_dict(value)
    width, height, depth = value
    return Dimensions(float(width), float(height), float(depth))


@dataclass
class Obstacle:
    """Axis-aligned box obstacle.

    Attributes
    ----------
    id : str
        Registry key.
    position : Vec3
        Box center in world coordinates (meters).
    dimensions : Dimensions
        Width (X), height (Y), depth (Z) in meters.
    """

    id: str
    position: Vec3
    dimensions: Dimensions

    @property
    def bounds(self) -> Tuple[Tuple[float, float, float], Tuple[float, float, float]]:
        """Return ((xmin, ymin, zmin), (xmax, ymax, zmax))."""
        p = self.position
        hw = self.dimensions.width / 2.0
        hh = self.dimensions.height / 2.0
        hd = self.dimensions.depth / 2.0
        return (p.x - hw, p.y - hh, p.z - hd), (p.x + hw, p.y + hh, p.z + hd)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "position": self.position.to_dict(),
            "dimensions": self.dimensions.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Obstacle":
        return cls(
            id=str(data["id"]),
            position=Vec3.from_dict(data["position"]),
            dimensions=Dimensions.from_dict(data["dimensions"]),
        )


@dataclass(frozen=True)
class CollisionBox:
    """Cached collision geometry for one obstacle."""

    id: str
    box_min: Tuple[float, float, float]
    box_max: Tuple[float, float, float]

    def intersect(self, origin: np.ndarray, direction: np.ndarray) -> Optional[float]:
        return ray_aabb_distance(origin, direction, self.box_min, self.box_max)


class ObstacleRegistry:
    """Owns the set of box obstacles, their visuals and the single edit selection.

    Enumeration follows insertion order. The registry does not reject duplicate
    ids: adding an existing id replaces the stored obstacle and its visual.
    """

    def __init__(self, scene: Optional[SceneGraph] = None) -> None:
        self.scene = scene if scene is not None else SceneGraph()
        self._obstacles: Dict[str, Obstacle] = {}
        self._nodes: Dict[str, BoxNode] = {}
        self._collision_cache: Dict[str, CollisionBox] = {}
        self._selected_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def add(self, obstacle: Union[Obstacle, Mapping[str, Any]]) -> Obstacle:
        """Add an obstacle (or an obstacle record) and build its box visual."""
        if not isinstance(obstacle, Obstacle):
            obstacle = Obstacle.from_dict(obstacle)
        else:
            obstacle = Obstacle(obstacle.id, obstacle.position.copy(), obstacle.dimensions.copy())

        if obstacle.id in self._obstacles:
            self._dispose_node(obstacle.id)
            self._collision_cache.pop(obstacle.id, None)

        self._obstacles[obstacle.id] = obstacle
        self._rebuild_node(obstacle)
        return obstacle

    def update(
        self,
        obstacle_id: str,
        new_position: Optional[Vec3Like] = None,
        new_dimensions: Optional[DimensionsLike] = None,
    ) -> None:
        """Apply the supplied fields; omitted fields keep their value."""
        obstacle = self._obstacles.get(obstacle_id)
        if obstacle is None:
            logger.warning("Obstacle with ID %s not found for update.", obstacle_id)
            return

        # Parse everything first so a rejected field leaves the obstacle untouched
        position = as_vec3(new_position) if new_position is not None else None
        dimensions = as_dimensions(new_dimensions) if new_dimensions is not None else None

        if position is not None:
            obstacle.position = position
            node = self._nodes.get(obstacle_id)
            if node is not None:
                node.position = obstacle.position.as_array()

        if dimensions is not None:
            obstacle.dimensions = dimensions
            # Box geometry is immutable: replace the visual
            self._dispose_node(obstacle_id)
            self._rebuild_node(obstacle)

        if new_position is not None or new_dimensions is not None:
            self._collision_cache.pop(obstacle_id, None)

    def remove(self, obstacle_id: str) -> None:
        if obstacle_id not in self._obstacles:
            logger.warning("Obstacle with ID %s not found for removal.", obstacle_id)
            return
        if self._selected_id == obstacle_id:
            self.deselect()
        self._dispose_node(obstacle_id)
        self._collision_cache.pop(obstacle_id, None)
        del self._obstacles[obstacle_id]

    def clear(self) -> None:
        for obstacle_id in list(self._obstacles):
            self.remove(obstacle_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_all(self) -> List[Obstacle]:
        return list(self._obstacles.values())

    def get_by_id(self, obstacle_id: str) -> Optional[Obstacle]:
        return self._obstacles.get(obstacle_id)

    def get_node(self, obstacle_id: str) -> Optional[BoxNode]:
        return self._nodes.get(obstacle_id)

    def __contains__(self, obstacle_id: object) -> bool:
        return obstacle_id in self._obstacles

    def __len__(self) -> int:
        return len(self._obstacles)

    def collision_boxes(self) -> List[CollisionBox]:
        """Collidable boxes in enumeration order, rebuilding stale cache entries."""
        boxes: List[CollisionBox] = []
        for obstacle_id, obstacle in self._obstacles.items():
            box = self._collision_cache.get(obstacle_id)
            if box is None:
                box_min, box_max = obstacle.bounds
                box = CollisionBox(obstacle_id, box_min, box_max)
                self._collision_cache[obstacle_id] = box
            boxes.append(box)
        return boxes

    # ------------------------------------------------------------------
    # Edit selection
    # ------------------------------------------------------------------
    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    def select(self, obstacle_id: str) -> None:
        """Attach the edit handle to one obstacle, detaching it from any other."""
        if obstacle_id not in self._obstacles:
            logger.warning("Obstacle with ID %s not found for selection.", obstacle_id)
            return
        self._selected_id = obstacle_id

    def deselect(self) -> None:
        self._selected_id = None

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def serialize(self) -> List[Dict[str, Any]]:
        return [o.to_dict() for o in self._obstacles.values()]

    def deserialize(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Replace all obstacles with the given records; invalid records are skipped."""
        self.clear()
        count = 0
        for record in records:
            try:
                self.add(Obstacle.from_dict(record))
            except (KeyError, TypeError, ValueError) as exc:
                logger.error("Skipping invalid obstacle record %r: %s", record, exc)
                continue
            count += 1
        return count

    # ------------------------------------------------------------------
    # Visuals
    # ------------------------------------------------------------------
    def _rebuild_node(self, obstacle: Obstacle) -> None:
        node = BoxNode(
            name=obstacle.id,
            owner=obstacle.id,
            width=obstacle.dimensions.width,
            height=obstacle.dimensions.height,
            depth=obstacle.dimensions.depth,
            position=obstacle.position.as_array(),
        )
        self._nodes[obstacle.id] = node
        self.scene.add(node)

    def _dispose_node(self, obstacle_id: str) -> None:
        node = self._nodes.pop(obstacle_id, None)
        if node is not None:
            self.scene.dispose(node)
