"""
panel_installer — provisioning orchestrator for the Pterodactyl panel.

Drives a host through an ordered list of privileged steps (packages,
repositories, database, config templates, services) with a per-step
failure policy.
"""

__version__ = "0.1.0"
