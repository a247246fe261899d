"""
Renderable node variants and the scene graph that holds them.

Every visual resource in the simulator is one of four node kinds:

- BoxNode: obstacle bodies and sensor model placeholders
- PlaneNode: the ground surface
- ConeNode: one beam volume per ray sample
- GroupNode: a container (sensor body, beam set of one sensor)

Each kind implements ``release()``. Leaf nodes drop their geometry and
material, groups release their children and then empty themselves.
Releasing an already released node is a no-op.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .geometry_utils import quat_identity


Color = Tuple[int, int, int]


class VisualNode(ABC):
    """Base class for all renderable nodes."""

    kind: str = "node"

    def __init__(
        self,
        name: str,
        owner: str,
        position: Optional[Sequence[float]] = None,
        quaternion: Optional[Sequence[float]] = None,
    ) -> None:
        self.name = name
        self.owner = owner
        self.position = np.zeros(3) if position is None else np.array(position, dtype=float)
        self.quaternion = quat_identity() if quaternion is None else np.array(quaternion, dtype=float)
        self.visible = True
        self.released = False

    @abstractmethod
    def release(self) -> None:
        """Free geometry and material held by this node."""

    @abstractmethod
    def live_resources(self) -> int:
        """Number of unreleased leaf resources reachable from this node."""

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"{type(self).__name__}(name={self.name!r}, owner={self.owner!r}, {state})"


class _LeafNode(VisualNode):
    def __init__(self, name: str, owner: str, color: Color = (128, 128, 128), **kwargs) -> None:
        super().__init__(name, owner, **kwargs)
        self.color = color
        self.geometry_disposed = False
        self.material_disposed = False

    def release(self) -> None:
        if self.released:
            return
        self.geometry_disposed = True
        self.material_disposed = True
        self.released = True

    def live_resources(self) -> int:
        return 0 if self.released else 1


class BoxNode(_LeafNode):
    kind = "box"

    def __init__(
        self,
        name: str,
        owner: str,
        width: float,
        height: float,
        depth: float,
        wireframe: bool = False,
        asset: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(name, owner, **kwargs)
        self.width = width
        self.height = height
        self.depth = depth
        self.wireframe = wireframe
        self.asset = asset


class PlaneNode(_LeafNode):
    """Horizontal rectangle centered on ``position``, spanning width (X) by depth (Z)."""

    kind = "plane"

    def __init__(self, name: str, owner: str, width: float, depth: float, double_sided: bool = True, **kwargs) -> None:
        super().__init__(name, owner, **kwargs)
        self.width = width
        self.depth = depth
        self.double_sided = double_sided


class ConeNode(_LeafNode):
    """Open-ended cone whose local +Y axis is rotated onto the beam direction."""

    kind = "cone"

    def __init__(
        self,
        name: str,
        owner: str,
        radius: float,
        height: float,
        radial_segments: int = 8,
        open_ended: bool = True,
        **kwargs,
    ) -> None:
        super().__init__(name, owner, **kwargs)
        self.radius = radius
        self.height = height
        self.radial_segments = radial_segments
        self.open_ended = open_ended


class GroupNode(VisualNode):
    kind = "group"

    def __init__(self, name: str, owner: str, **kwargs) -> None:
        super().__init__(name, owner, **kwargs)
        self.children: List[VisualNode] = []

    def add(self, child: VisualNode) -> None:
        self.children.append(child)

    def remove(self, child: VisualNode) -> bool:
        if child in self.children:
            self.children.remove(child)
            return True
        return False

    def find(self, name: str) -> Optional[VisualNode]:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def release(self) -> None:
        if self.released:
            return
        for child in self.children:
            child.release()
        self.children = []
        self.released = True

    def live_resources(self) -> int:
        return sum(child.live_resources() for child in self.children)


class SceneGraph:
    """Flat list of root nodes, the stand-in for a renderer's scene."""

    def __init__(self) -> None:
        self._nodes: List[VisualNode] = []

    def add(self, node: VisualNode) -> None:
        if node not in self._nodes:
            self._nodes.append(node)

    def remove(self, node: VisualNode) -> bool:
        """Detach a root node. The caller remains responsible for releasing it."""
        if node in self._nodes:
            self._nodes.remove(node)
            return True
        return False

    def dispose(self, node: VisualNode) -> None:
        """Detach and release a root node."""
        self.remove(node)
        node.release()

    @property
    def nodes(self) -> List[VisualNode]:
        return list(self._nodes)

    def __iter__(self) -> Iterator[VisualNode]:
        return iter(list(self._nodes))

    def __len__(self) -> int:
        return len(self._nodes)

    def find(self, name: str) -> Optional[VisualNode]:
        for node in self._nodes:
            if node.name == name:
                return node
        return None

    def owned_by(self, owner: str) -> List[VisualNode]:
        return [n for n in self._nodes if n.owner == owner]

    def live_resources(self, owner: Optional[str] = None) -> int:
        """Count unreleased leaf resources attached to the scene, optionally for one owner."""
        nodes = self._nodes if owner is None else self.owned_by(owner)
        return sum(n.live_resources() for n in nodes)
