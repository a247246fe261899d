from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import json
import logging
import math

import numpy as np

from .geometry_utils import Vec3, Vec3Like, as_vec3, quat_from_euler_yxz
from .scene_graph import BoxNode, GroupNode, SceneGraph


logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "model_placeholder"
PLACEHOLDER_SIZE = 0.1


class BeamLayout(str, Enum):
    """How a sensor's channels are distributed vertically."""

    VERTICAL_EVEN = "verticalEven"
    SINGLE_PLANE = "singlePlane"


@dataclass(frozen=True)
class SensorDefinition:
    """Immutable sensor type loaded from the catalog.

    Attributes
    ----------
    id : str
        Catalog key.
    display_name : str
        Human-readable name.
    h_fov, v_fov : float
        Horizontal and vertical field of view (degrees).
    max_range : float
        Maximum range (meters).
    channels : int
        Number of vertical sampling rings, >= 1.
    beam_layout : BeamLayout
        Vertical channel distribution policy.
    model_file : str
        Visual model asset, relative to the asset root.
    """

    id: str
    display_name: str
    h_fov: float
    v_fov: float
    max_range: float
    channels: int
    beam_layout: BeamLayout = BeamLayout.VERTICAL_EVEN
    model_file: str = ""

    def __post_init__(self) -> None:
        if self.channels < 1:
            raise ValueError(f"Sensor {self.id}: channels must be >= 1, got {self.channels}")
        if self.max_range <= 0.0:
            raise ValueError(f"Sensor {self.id}: max_range must be positive, got {self.max_range}")
        if not (0.0 <= self.h_fov <= 360.0):
            raise ValueError(f"Sensor {self.id}: hFov must be in [0, 360], got {self.h_fov}")
        if self.v_fov < 0.0:
            raise ValueError(f"Sensor {self.id}: vFov must be >= 0, got {self.v_fov}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "hFov": self.h_fov,
            "vFov": self.v_fov,
            "maxRange": self.max_range,
            "channels": self.channels,
            "beamLayout": self.beam_layout.value,
            "modelFile": self.model_file,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SensorDefinition":
        return cls(
            id=str(data["id"]),
            display_name=str(data.get("displayName", data["id"])),
            h_fov=float(data["hFov"]),
            v_fov=float(data["vFov"]),
            max_range=float(data["maxRange"]),
            channels=int(data["channels"]),
            beam_layout=BeamLayout(data.get("beamLayout", BeamLayout.VERTICAL_EVEN.value)),
            model_file=str(data.get("modelFile", "")),
        )


@dataclass
class Rotation:
    """Orientation in degrees, applied yaw (Y) then pitch (X) then roll (Z)."""

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0

    def copy(self) -> "Rotation":
        return Rotation(self.roll, self.pitch, self.yaw)

    def quaternion(self) -> np.ndarray:
        return quat_from_euler_yxz(
            pitch=math.radians(self.pitch),
            yaw=math.radians(self.yaw),
            roll=math.radians(self.roll),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"roll": self.roll, "pitch": self.pitch, "yaw": self.yaw}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rotation":
        return cls(float(data["roll"]), float(data["pitch"]), float(data["yaw"]))


RotationLike = Union[Rotation, Mapping[str, Any]]


def as_rotation(value: RotationLike) -> Rotation:
    if isinstance(value, Rotation):
        return value.copy()
    return Rotation.from_dict(value)


@dataclass
class SensorInstance:
    """A placed sensor: pose and visibility of one catalog entry."""

    id: str
    definition_id: str
    position: Vec3
    rotation: Rotation = field(default_factory=Rotation)
    visible: bool = True

    def quaternion(self) -> np.ndarray:
        return self.rotation.quaternion()

    def copy(self) -> "SensorInstance":
        return SensorInstance(
            id=self.id,
            definition_id=self.definition_id,
            position=self.position.copy(),
            rotation=self.rotation.copy(),
            visible=self.visible,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "definitionId": self.definition_id,
            "position": self.position.to_dict(),
            "rotation": self.rotation.to_dict(),
            "visible": self.visible,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SensorInstance":
        return cls(
            id=str(data["id"]),
            definition_id=str(data["definitionId"]),
            position=Vec3.from_dict(data["position"]),
            rotation=Rotation.from_dict(data.get("rotation", {"roll": 0.0, "pitch": 0.0, "yaw": 0.0})),
            visible=bool(data.get("visible", True)),
        )


class SensorRegistry:
    """Sensor catalog (definitions) and placement registry (instances).

    Parameters
    ----------
    scene : SceneGraph, optional
        Scene receiving each instance's visual group.
    asset_root : str or Path, optional
        Directory that definition ``model_file`` paths are resolved against.
    """

    def __init__(
        self,
        scene: Optional[SceneGraph] = None,
        asset_root: Optional[Union[str, Path]] = None,
    ) -> None:
        self.scene = scene if scene is not None else SceneGraph()
        self.asset_root = Path(asset_root) if asset_root is not None else None
        self._definitions: Dict[str, SensorDefinition] = {}
        self._instances: Dict[str, SensorInstance] = {}
        self._groups: Dict[str, GroupNode] = {}

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    def load_definitions(
        self,
        source: Union[str, Path, Iterable[Mapping[str, Any]]],
    ) -> int:
        """Load definitions from a JSON file path or an iterable of records.

        Later records replace earlier ones with the same id. A load failure is
        logged and leaves the catalog updated up to the failing record.

        Returns
        -------
        int
            Number of definitions stored by this call.
        """
        if isinstance(source, (str, Path)):
            try:
                with open(source, "r", encoding="utf-8") as f:
                    records = json.load(f)
            except (OSError, json.JSONDecodeError) as exc:
                logger.error("Error loading sensor definitions from %s: %s", source, exc)
                return 0
        else:
            records = source

        if isinstance(records, Mapping) or not isinstance(records, Iterable):
            logger.error("Sensor definitions must be a list of records, got %s", type(records).__name__)
            return 0

        loaded = 0
        for record in records:
            try:
                definition = SensorDefinition.from_dict(record)
            except (KeyError, TypeError, ValueError) as exc:
                logger.error("Error loading sensor definition %r: %s", record, exc)
                break
            self._definitions[definition.id] = definition
            loaded += 1
        logger.info("Sensor definitions loaded: %s", ", ".join(self._definitions))
        return loaded

    def get_definitions(self) -> List[SensorDefinition]:
        return list(self._definitions.values())

    def get_definition_by_id(self, definition_id: str) -> Optional[SensorDefinition]:
        return self._definitions.get(definition_id)

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------
    def add_instance(
        self,
        data: Union[SensorInstance, Mapping[str, Any]],
    ) -> Optional[SensorInstance]:
        """Place a sensor and return a copy of the stored instance.

        Returns None (and logs) if its definition is unknown. Edits to the
        returned copy have no effect; use ``update_instance``.
        """
        if isinstance(data, SensorInstance):
            instance = data.copy()
        else:
            instance = SensorInstance.from_dict(data)

        definition = self._definitions.get(instance.definition_id)
        if definition is None:
            logger.error("Sensor definition %s not found.", instance.definition_id)
            return None

        if instance.id in self._instances:
            self._dispose_group(instance.id)

        self._instances[instance.id] = instance
        group = self._build_group(instance, definition)
        self._groups[instance.id] = group
        self.scene.add(group)
        return instance.copy()

    def update_instance(
        self,
        sensor_id: str,
        new_position: Optional[Vec3Like] = None,
        new_rotation: Optional[RotationLike] = None,
    ) -> None:
        instance = self._instances.get(sensor_id)
        group = self._groups.get(sensor_id)
        if instance is None or group is None:
            logger.warning("Sensor with ID %s not found for update.", sensor_id)
            return

        position = as_vec3(new_position) if new_position is not None else None
        rotation = as_rotation(new_rotation) if new_rotation is not None else None

        if position is not None:
            instance.position = position
            group.position = instance.position.as_array()

        if rotation is not None:
            instance.rotation = rotation
            group.quaternion = instance.quaternion()

    def remove_instance(self, sensor_id: str) -> None:
        """Remove a placed sensor, releasing its visual group before returning."""
        if sensor_id not in self._instances:
            logger.warning("Sensor with ID %s not found for removal.", sensor_id)
            return
        self._dispose_group(sensor_id)
        del self._instances[sensor_id]

    def set_visibility(self, sensor_id: str, visible: bool) -> None:
        instance = self._instances.get(sensor_id)
        group = self._groups.get(sensor_id)
        if instance is None or group is None:
            logger.warning("Sensor with ID %s not found for visibility toggle.", sensor_id)
            return
        instance.visible = bool(visible)
        group.visible = bool(visible)

    def clear(self) -> None:
        for sensor_id in list(self._instances):
            self.remove_instance(sensor_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_all_instances(self) -> List[SensorInstance]:
        return list(self._instances.values())

    def get_instance_by_id(self, sensor_id: str) -> Optional[SensorInstance]:
        return self._instances.get(sensor_id)

    def get_group(self, sensor_id: str) -> Optional[GroupNode]:
        return self._groups.get(sensor_id)

    def orientation(self, sensor_id: str) -> Optional[np.ndarray]:
        instance = self._instances.get(sensor_id)
        return instance.quaternion() if instance is not None else None

    def __contains__(self, sensor_id: object) -> bool:
        return sensor_id in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def serialize(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self._instances.values()]

    def deserialize(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Replace all instances with the given records. Returns the number placed."""
        self.clear()
        count = 0
        for record in records:
            try:
                instance = self.add_instance(record)
            except (KeyError, TypeError, ValueError) as exc:
                logger.error("Skipping invalid sensor record %r: %s", record, exc)
                continue
            if instance is not None:
                count += 1
        return count

    # ------------------------------------------------------------------
    # Visuals
    # ------------------------------------------------------------------
    def _resolve_asset(self, model_file: str) -> Optional[Path]:
        if not model_file:
            return None
        path = Path(model_file)
        if self.asset_root is not None and not path.is_absolute():
            path = self.asset_root / path
        return path if path.is_file() else None

    def _build_group(self, instance: SensorInstance, definition: SensorDefinition) -> GroupNode:
        group = GroupNode(
            name=instance.id,
            owner=instance.id,
            position=instance.position.as_array(),
            quaternion=instance.quaternion(),
        )
        group.visible = instance.visible

        asset = self._resolve_asset(definition.model_file)
        if asset is not None:
            model = BoxNode(
                name="model",
                owner=instance.id,
                width=PLACEHOLDER_SIZE,
                height=PLACEHOLDER_SIZE,
                depth=PLACEHOLDER_SIZE,
                asset=str(asset),
                color=(60, 60, 60),
            )
            logger.info("Loaded model for %s", definition.display_name)
        else:
            logger.error(
                "Error loading model for %s: asset %r not found, using placeholder",
                definition.display_name,
                definition.model_file,
            )
            model = BoxNode(
                name=PLACEHOLDER_NAME,
                owner=instance.id,
                width=PLACEHOLDER_SIZE,
                height=PLACEHOLDER_SIZE,
                depth=PLACEHOLDER_SIZE,
                wireframe=True,
                color=(255, 0, 0),
            )
        group.add(model)
        return group

    def _dispose_group(self, sensor_id: str) -> None:
        group = self._groups.pop(sensor_id, None)
        if group is not None:
            self.scene.dispose(group)
