"""CPU-only rasterizing renderer: numpy for the passes, numba for the inner loops."""

from .errors import ConfigurationError, MeshError, RenderError, TextureError
from .framebuffer import Framebuffer
from .loader import load_obj, load_texture, save_image
from .options import RenderOptions
from .pipeline import Renderer, render
from .scene import Camera, Light, Mesh, TextureSet, Vertex
from .textures import Texture

__version__ = "0.1.0"

__all__ = [
    "Camera",
    "ConfigurationError",
    "Framebuffer",
    "Light",
    "Mesh",
    "MeshError",
    "RenderError",
    "RenderOptions",
    "Renderer",
    "Texture",
    "TextureError",
    "TextureSet",
    "Vertex",
    "load_obj",
    "load_texture",
    "render",
    "save_image",
]
