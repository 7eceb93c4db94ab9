"""
FastAPI routers for the AAS Twin Engine.
"""

from twin_engine.routers import (
    plugins,
    shell_descriptors,
    shells,
    submodel_descriptors,
    submodels,
)

__all__ = ["shell_descriptors", "shells", "submodels", "submodel_descriptors", "plugins"]
