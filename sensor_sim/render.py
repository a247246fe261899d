from __future__ import annotations

from typing import Optional, Tuple
import math

import numpy as np
import pygame

from .geometry_utils import quat_rotate
from .obstacles import ObstacleRegistry
from .presentation import BeamPresenter
from .scene_graph import ConeNode
from .sensors import SensorRegistry
from .world import World


Color = Tuple[int, int, int]

THEME = {
    "bg": (18, 22, 32),
    "grid": (28, 34, 48),
    "ground": (32, 38, 52),
    "ground_edge": (70, 80, 104),
    "obstacle_fill": (45, 52, 70),
    "obstacle_edge": (65, 75, 98),
    "obstacle_selected": (255, 200, 80),
    "sensor_fill": (100, 220, 255),
    "sensor_hidden": (70, 80, 100),
    "sensor_outline": (40, 140, 200),
    "sensor_selected": (255, 255, 255),
    "hud_bg": (28, 34, 48),
    "hud_border": (55, 65, 88),
    "hud_text": (200, 220, 255),
    "beam_close": (255, 90, 90),
    "beam_mid": (255, 180, 100),
    "beam_far": (100, 200, 255),
}


def _blend(a: Color, b: Color, t: float) -> Color:
    return (
        int(a[0] + t * (b[0] - a[0])),
        int(a[1] + t * (b[1] - a[1])),
        int(a[2] + t * (b[2] - a[2])),
    )


def beam_color(t: float) -> Color:
    """Distance color: 0 = close (red), 0.5 = mid (orange), 1 = far (blue)."""
    t = max(0.0, min(1.0, t))
    if t < 0.5:
        return _blend(THEME["beam_close"], THEME["beam_mid"], t * 2.0)
    return _blend(THEME["beam_mid"], THEME["beam_far"], (t - 0.5) * 2.0)


class PygameRenderer:
    """Top-down view of the ground, obstacles, sensors and beam volumes.

    Looks down the -Y axis: world +x maps to screen right and world +z maps to
    screen down. Beams are drawn as the X-Z projection of each cone's axis.
    """

    def __init__(
        self,
        world: World,
        obstacles: ObstacleRegistry,
        sensors: SensorRegistry,
        presenter: BeamPresenter,
        window_width: int,
        window_height: int,
        show_beams: bool = True,
        grid_step_m: float = 2.0,
    ) -> None:
        pygame.init()
        pygame.display.set_caption("Sensor Beam Simulator")
        self.screen = pygame.display.set_mode((window_width, window_height))
        self.clock = pygame.time.Clock()

        self.world = world
        self.obstacles = obstacles
        self.sensors = sensors
        self.presenter = presenter
        self.window_width = window_width
        self.window_height = window_height
        self.show_beams = show_beams
        self.grid_step_m = grid_step_m
        self._fit_view()

    # ------------------------------------------------------------------
    # Coordinate transforms
    # ------------------------------------------------------------------
    def _fit_view(self) -> None:
        bounds = self.world.get_bounds()
        if bounds is None:
            self.x0, self.z0 = 0.0, 0.0
            self.scale = 20.0
            return
        self.x0, self.z0 = bounds.x_min, bounds.z_min
        self.scale = min(self.window_width / bounds.size_x, self.window_height / bounds.size_z)

    def _world_to_screen(self, x: float, z: float) -> Tuple[int, int]:
        return int((x - self.x0) * self.scale), int((z - self.z0) * self.scale)

    def _meters_to_pixels(self, r: float) -> int:
        return int(r * self.scale)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def draw(
        self,
        selected_sensor: Optional[str] = None,
        hud_lines: Tuple[str, ...] = (),
        fps: float = 0.0,
    ) -> None:
        """Render one frame."""
        self._fit_view()
        self.screen.fill(THEME["bg"])
        self._draw_ground()
        self._draw_obstacles()
        if self.show_beams:
            self._draw_beams()
        self._draw_sensors(selected_sensor)
        self._draw_hud(hud_lines, fps)
        pygame.display.flip()

    def _draw_ground(self) -> None:
        bounds = self.world.get_bounds()
        if bounds is None:
            return
        sx, sz = self._world_to_screen(bounds.x_min, bounds.z_min)
        ex, ez = self._world_to_screen(bounds.x_max, bounds.z_max)
        rect = pygame.Rect(sx, sz, ex - sx, ez - sz)
        pygame.draw.rect(self.screen, THEME["ground"], rect)

        step = self.grid_step_m
        x = bounds.x_min
        while x <= bounds.x_max:
            pygame.draw.line(
                self.screen, THEME["grid"],
                self._world_to_screen(x, bounds.z_min), self._world_to_screen(x, bounds.z_max), 1,
            )
            x += step
        z = bounds.z_min
        while z <= bounds.z_max:
            pygame.draw.line(
                self.screen, THEME["grid"],
                self._world_to_screen(bounds.x_min, z), self._world_to_screen(bounds.x_max, z), 1,
            )
            z += step
        pygame.draw.rect(self.screen, THEME["ground_edge"], rect, 2)

    def _draw_obstacles(self) -> None:
        selected = self.obstacles.selected_id
        for obs in self.obstacles.get_all():
            (xmin, _, zmin), (xmax, _, zmax) = obs.bounds
            sx, sz = self._world_to_screen(xmin, zmin)
            w = max(1, self._meters_to_pixels(xmax - xmin))
            h = max(1, self._meters_to_pixels(zmax - zmin))
            rect = pygame.Rect(sx, sz, w, h)
            pygame.draw.rect(self.screen, THEME["obstacle_fill"], rect)
            edge = THEME["obstacle_selected"] if obs.id == selected else THEME["obstacle_edge"]
            pygame.draw.rect(self.screen, edge, rect, 2)

    def _draw_beams(self) -> None:
        for sensor_id in self.presenter.sensor_ids():
            group = self.presenter.beam_group(sensor_id)
            if group is None or not group.visible or not group.children:
                continue
            cones = [c for c in group.children if isinstance(c, ConeNode)]
            longest = max((c.height for c in cones), default=1.0)
            if longest < 1e-6:
                longest = 1.0
            for cone in cones:
                axis = quat_rotate(cone.quaternion, (0.0, 1.0, 0.0))
                half = axis * (cone.height / 2.0)
                start = cone.position - half
                end = cone.position + half
                pygame.draw.line(
                    self.screen,
                    beam_color(cone.height / longest),
                    self._world_to_screen(float(start[0]), float(start[2])),
                    self._world_to_screen(float(end[0]), float(end[2])),
                    1,
                )

    def _draw_sensors(self, selected_sensor: Optional[str]) -> None:
        radius_px = max(3, self._meters_to_pixels(0.25))
        for inst in self.sensors.get_all_instances():
            center = self._world_to_screen(inst.position.x, inst.position.z)
            fill = THEME["sensor_fill"] if inst.visible else THEME["sensor_hidden"]
            outline = THEME["sensor_selected"] if inst.id == selected_sensor else THEME["sensor_outline"]
            pygame.draw.circle(self.screen, fill, center, radius_px, 0)
            pygame.draw.circle(self.screen, outline, center, radius_px, 2)

            # Heading: sensor +Z projected onto the ground
            forward = quat_rotate(inst.quaternion(), (0.0, 0.0, 1.0))
            flat = np.array([forward[0], forward[2]])
            norm = math.hypot(flat[0], flat[1])
            if norm < 1e-6:
                continue
            tip = (
                inst.position.x + flat[0] / norm * 0.8,
                inst.position.z + flat[1] / norm * 0.8,
            )
            pygame.draw.line(self.screen, outline, center, self._world_to_screen(*tip), 3)

    def _draw_hud(self, lines: Tuple[str, ...], fps: float) -> None:
        pad = 10
        font = pygame.font.SysFont("monospace", 13)
        texts = [f"  FPS={fps:.1f}  "] + [f"  {line}  " for line in lines]
        y = pad
        for text in texts:
            surf = font.render(text, True, THEME["hud_text"])
            r = surf.get_rect(topleft=(pad, y))
            panel = r.inflate(pad, 4)
            pygame.draw.rect(self.screen, THEME["hud_bg"], panel)
            pygame.draw.rect(self.screen, THEME["hud_border"], panel, 1)
            self.screen.blit(surf, (panel.x + 4, panel.y + 2))
            y += panel.height + 2

    def tick(self, target_fps: int) -> float:
        """Cap frame rate and return achieved FPS."""
        fps = self.clock.get_fps()
        self.clock.tick(target_fps)
        return fps

    def close(self) -> None:
        pygame.quit()
