"""
Platform handlers, keyed by family.
"""

from __future__ import annotations

from panel_installer.core.errors import UnsupportedPlatformError
from panel_installer.core.models.platform import Platform, PlatformFamily
from panel_installer.core.platforms.base import FIREWALL_PORTS, PlatformHandler
from panel_installer.core.platforms.debian import DebianHandler
from panel_installer.core.platforms.rhel import RhelHandler
from panel_installer.core.services.provisioner import ResourceProvisioner

HANDLERS: dict[PlatformFamily, type[PlatformHandler]] = {
    PlatformFamily.DEBIAN: DebianHandler,
    PlatformFamily.RHEL: RhelHandler,
}

SUPPORTED_FAMILIES = frozenset(HANDLERS)


def handler_for(platform: Platform, provisioner: ResourceProvisioner) -> PlatformHandler:
    """Instantiate the handler for *platform*'s family.

    Raises:
        UnsupportedPlatformError: for a family without a handler.
    """
    handler_cls = HANDLERS.get(platform.family)
    if handler_cls is None:
        raise UnsupportedPlatformError(
            f"No installer support for {platform.label} (family {platform.family.value})"
        )
    return handler_cls(platform, provisioner)


__all__ = [
    "FIREWALL_PORTS",
    "HANDLERS",
    "SUPPORTED_FAMILIES",
    "DebianHandler",
    "PlatformHandler",
    "RhelHandler",
    "handler_for",
]
