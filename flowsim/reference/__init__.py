"""Reference collaborators: YAML keyword deck, Cartesian grid, table props."""
from .framework import ReferenceCase, ReferenceFramework, ReferenceGridAndProps

__all__ = ["ReferenceCase", "ReferenceFramework", "ReferenceGridAndProps"]
