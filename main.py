import argparse
import logging
import math
import os
import time

import numpy as np
import pygame

from cpuraster import Camera, Light, Renderer, RenderOptions, TextureSet, load_obj, load_texture, save_image
from cpuraster.errors import TextureError
from cpuraster.maths import rotate_x, rotate_y, scale
from cpuraster.options import SHADING_MODELS

logger = logging.getLogger("viewer")


# ============================================================
#  Asset loading
# ============================================================

def optional_map(path):
    """Load a texture if the file exists; a missing map just disables that role."""
    if not path or not os.path.exists(path):
        return None
    try:
        return load_texture(path)
    except TextureError as e:
        logger.warning("%s", e)
        return None


def load_material(obj_path, args) -> TextureSet:
    """
    Texture maps next to the model, named like african_head_diffuse.tga,
    african_head_nm_tangent.tga, african_head_spec.tga, african_head_glow.tga.
    Explicit command-line paths win.
    """
    stem = os.path.splitext(obj_path)[0]
    normal_space = "object" if args.object_normals else "tangent"
    nm_default = stem + ("_nm.tga" if args.object_normals else "_nm_tangent.tga")
    return TextureSet(
        diffuse=optional_map(args.diffuse or stem + "_diffuse.tga"),
        normal=optional_map(args.normal or nm_default),
        specular=optional_map(args.specular or stem + "_spec.tga"),
        glow=optional_map(args.glow or stem + "_glow.tga"),
        normal_space=normal_space,
    )


# ============================================================
#  Main loop
# ============================================================

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Interactive viewer for the cpuraster software renderer")
    p.add_argument("obj", nargs="?", default="assets/african_head.obj")
    p.add_argument("--diffuse")
    p.add_argument("--normal")
    p.add_argument("--specular")
    p.add_argument("--glow")
    p.add_argument("--object-normals", action="store_true", help="normal map is in object space")
    p.add_argument("--size", type=int, nargs=2, default=(900, 900), metavar=("W", "H"), help="window size")
    p.add_argument("--render-scale", type=float, default=0.5, help="render resolution / window size")
    p.add_argument("--output", help="render one frame to this PNG and exit")
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)


def main(argv=None):
    """
    Main interactive loop:
      - handle input
      - rebuild camera, model matrix and lights
      - render one frame with the current options and present it
    """
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s %(message)s")

    mesh = load_obj(args.obj)
    material = load_material(args.obj, args)

    W, H = args.size
    RW, RH = max(1, int(W * args.render_scale)), max(1, int(H * args.render_scale))

    renderer = Renderer()
    options = RenderOptions(shadow_map_size=512)

    # --- Runtime state (camera/object/light)
    yaw = 0.0
    pitch = 0.0
    pos = [0.0, 0.0, 2.7]
    obj_scale = 1.0
    perspective = True
    light_yaw = 0.6
    light_pitch = 0.35

    def light_dir():
        """Direction the key light travels in, from yaw/pitch angles."""
        cy, sy = math.cos(light_yaw), math.sin(light_yaw)
        cp, sp = math.cos(light_pitch), math.sin(light_pitch)
        return (-sy * cp, -sp, -cy * cp)

    def frame():
        model = rotate_y(yaw) @ rotate_x(pitch) @ scale(obj_scale, obj_scale, obj_scale)
        camera = Camera(eye=tuple(pos), target=(pos[0], pos[1], pos[2] - 1.0),
                        fov_y=60.0, ortho_height=None if perspective else 1.2)
        lights = [
            Light.ambient(intensity=0.25),
            Light.directional(light_dir(), intensity=1.0),
        ]
        return renderer.render(mesh, material, camera, lights, (RW, RH), options, model)

    if args.output:
        save_image(frame(), args.output)
        return

    pygame.init()
    screen = pygame.display.set_mode((W, H))
    pygame.display.set_caption("cpuraster: 1..5 shading, F/M/B/G/T/C/N toggles, P/O projections")
    render_surface = pygame.Surface((RW, RH))
    clock = pygame.time.Clock()
    font = pygame.font.SysFont("consolas", 16)

    toggles = {
        pygame.K_f: "shadows",
        pygame.K_m: "ssao",
        pygame.K_b: "bloom",
        pygame.K_g: "wireframe",
        pygame.K_t: "toon_shading",
        pygame.K_n: "normal_mapping",
    }
    shading_keys = {pygame.K_1 + i: name for i, name in enumerate(SHADING_MODELS)}

    dragging = False
    last_mouse = (0, 0)
    running = True
    while running:
        dt = clock.tick(60) / 1000.0

        # ====================================================
        #  Input handling
        # ====================================================
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False

            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    running = False
                elif event.key == pygame.K_p:
                    perspective = True
                elif event.key == pygame.K_o:
                    perspective = False
                elif event.key in shading_keys:
                    options = options.replace(shading=shading_keys[event.key])
                elif event.key in toggles:
                    name = toggles[event.key]
                    options = options.replace(**{name: not getattr(options, name)})
                elif event.key == pygame.K_c:
                    options = options.replace(cull="none" if options.cull == "back" else "back")
                elif event.key == pygame.K_F12 and renderer.framebuffer is not None:
                    save_image(renderer.framebuffer, time.strftime("screenshot-%Y%m%d-%H%M%S.png"))

            elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                dragging = True
                last_mouse = event.pos

            elif event.type == pygame.MOUSEBUTTONUP and event.button == 1:
                dragging = False

            elif event.type == pygame.MOUSEMOTION and dragging:
                # Mouse drag rotates the model (yaw/pitch)
                mx, my = event.pos
                dx, dy = mx - last_mouse[0], my - last_mouse[1]
                last_mouse = (mx, my)
                yaw += dx * 0.01
                pitch = max(-1.4, min(1.4, pitch + dy * 0.01))

        keys = pygame.key.get_pressed()

        # Camera movement
        speed = 1.8 * dt
        if keys[pygame.K_w]:
            pos[2] -= speed
        if keys[pygame.K_s]:
            pos[2] += speed
        if keys[pygame.K_a]:
            pos[0] -= speed
        if keys[pygame.K_d]:
            pos[0] += speed
        if keys[pygame.K_q]:
            pos[1] -= speed
        if keys[pygame.K_e]:
            pos[1] += speed

        # Model scale
        if keys[pygame.K_z]:
            obj_scale = max(0.15, obj_scale - 0.9 * dt)
        if keys[pygame.K_x]:
            obj_scale = min(8.0, obj_scale + 0.9 * dt)

        # Light control
        if keys[pygame.K_j]:
            light_yaw -= 1.5 * dt
        if keys[pygame.K_l]:
            light_yaw += 1.5 * dt
        if keys[pygame.K_i]:
            light_pitch += 1.5 * dt
        if keys[pygame.K_k]:
            light_pitch -= 1.5 * dt
        light_pitch = max(-1.2, min(1.2, light_pitch))

        # ====================================================
        #  Render + present
        # ====================================================
        fb = frame()
        # surfarray is (W, H, 3); the framebuffer is (H, W, 3)
        pygame.surfarray.blit_array(render_surface, np.ascontiguousarray(fb.color.swapaxes(0, 1)))
        if (RW, RH) != (W, H):
            pygame.transform.scale(render_surface, (W, H), screen)
        else:
            screen.blit(render_surface, (0, 0))

        on = [name for name in toggles.values() if getattr(options, name)]
        hud = [
            f"{'PERSPECTIVE (P)' if perspective else 'ORTHO (O)'} | {options.shading.upper()} | "
            f"cull {options.cull} | {'+'.join(on) or 'no effects'} | FPS: {clock.get_fps():.1f}",
            "1..5 shading | F shadows M ssao B bloom G wire T toon N normal map C cull | "
            "LMB rotate | WASD/QE move | Z/X scale | IJKL light | F12 screenshot | ESC exit",
        ]
        y = 10
        for line in hud:
            screen.blit(font.render(line, True, (235, 235, 235)), (10, y))
            y += 18

        pygame.display.flip()

    pygame.quit()


if __name__ == "__main__":
    main()
