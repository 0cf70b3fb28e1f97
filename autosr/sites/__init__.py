"""
Site Modules Layer.

Each module resolves links on its hosts to trackable targets. Modules are
registered at startup; the tracker only ever reaches them through the
`ModuleRegistry`.
"""

from autosr.core.modules import ModuleRegistry
from autosr.models.config import AppConfig

from .hls import HLSModule, HLSTarget


def default_registry(config: AppConfig) -> ModuleRegistry:
    """Builds a registry with every module the package ships."""
    registry = ModuleRegistry()
    if config.hls_hosts:
        registry.register(HLSModule(config))
    return registry


__all__ = ["HLSModule", "HLSTarget", "default_registry"]
