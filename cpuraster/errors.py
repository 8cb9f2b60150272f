"""Exceptions raised by the renderer core."""


class RenderError(Exception):
    """Base class for every error the renderer raises."""


class ConfigurationError(RenderError, ValueError):
    """Invalid render options or resolution."""


class MeshError(RenderError, ValueError):
    """Mesh data breaks an integrity rule (bad index, mismatched arrays)."""


class TextureError(RenderError):
    """A texture file could not be decoded."""
