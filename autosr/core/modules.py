"""
Resolves the site module responsible for a link's host.
"""

import logging
from urllib.parse import urlparse

from autosr.exceptions import InvalidLinkError, NoModuleForHostError
from autosr.models.target import Module

log = logging.getLogger(__name__)


def normalize_host(host: str) -> str:
    host = host.strip().lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def host_of(link: str) -> str:
    """Extracts the normalized host from a link."""
    if not link or not link.strip():
        raise InvalidLinkError("Link is empty.")
    try:
        host = urlparse(link.strip()).hostname
    except ValueError as e:
        raise InvalidLinkError(f"{link}: {e}") from e
    if not host:
        raise InvalidLinkError(f"{link}: link has no host.")
    return normalize_host(host)


class ModuleRegistry:
    """
    A lookup table from host name to the module that owns targets on that host.

    Resolution is a pure table lookup; nothing is cached outside this object so
    it stays the single source of truth for host ownership.
    """

    def __init__(self) -> None:
        self._modules: dict[str, Module] = {}

    def register(self, module: Module, *hosts: str) -> None:
        """Registers a module for its own hosts plus any extra hosts given."""
        claimed = [normalize_host(h) for h in (*module.hosts, *hosts) if h]
        if not claimed:
            raise ValueError(f"{type(module).__name__} does not claim any host.")
        for host in claimed:
            if (current := self._modules.get(host)) and current is not module:
                log.warning(
                    f"[yellow]Host '{host}' moved from {type(current).__name__} "
                    f"to {type(module).__name__}.[/yellow]"
                )
            self._modules[host] = module
        log.debug(f"Registered {type(module).__name__} for {', '.join(claimed)}")

    def find(self, host: str) -> Module:
        try:
            return self._modules[normalize_host(host)]
        except KeyError:
            raise NoModuleForHostError(host) from None

    def resolve(self, link: str) -> Module:
        """Finds the module for the host component of a link."""
        return self.find(host_of(link))

    def hosts(self) -> list[str]:
        return sorted(self._modules)

    def modules(self) -> list[Module]:
        """Every registered module, once each."""
        return list({id(m): m for m in self._modules.values()}.values())

    def __contains__(self, host: str) -> bool:
        return normalize_host(host) in self._modules
