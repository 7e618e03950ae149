from .controller import RadiusController

__all__ = ["RadiusController"]
