"""
Template rendering — strict ``<placeholder>`` substitution.

Simple literal replacement, no conditionals, no loops, no escaping.
Strict: if the template references a key the mapping does not provide,
rendering fails before anything is written, so an unexpanded token like
``<domain>`` can never land in an on-disk config.

Templates ship with the package under ``panel_installer/templates/``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path

from panel_installer.core.errors import MissingPlaceholderError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent.parent / "templates"

PLACEHOLDER_RE = re.compile(r"<([a-z][a-z0-9_]*)>")


def unresolved_tokens(text: str) -> list[str]:
    """Return placeholder names still present in *text*, in order of first use."""
    seen: list[str] = []
    for name in PLACEHOLDER_RE.findall(text):
        if name not in seen:
            seen.append(name)
    return seen


def render(
    template_source: str,
    placeholders: Mapping[str, str],
    *,
    name: str = "",
) -> str:
    """Substitute every ``<key>`` token with ``placeholders[key]``.

    Args:
        template_source: Template text.
        placeholders: Mapping of placeholder name to replacement value.
            Extra keys are ignored.
        name: Template name, used in error messages.

    Returns:
        Rendered text with no placeholder tokens left.

    Raises:
        MissingPlaceholderError: when the template uses a key that the
            mapping does not contain.
    """
    missing = [key for key in unresolved_tokens(template_source) if key not in placeholders]
    if missing:
        raise MissingPlaceholderError(missing, template=name)

    rendered = PLACEHOLDER_RE.sub(
        lambda m: str(placeholders[m.group(1)]),
        template_source,
    )
    logger.debug("Rendered template %s (%d bytes)", name or "<inline>", len(rendered))
    return rendered


def load_template(name: str) -> str:
    """Read a template shipped with the package.

    Raises:
        FileNotFoundError: if no template with that name exists.
    """
    path = TEMPLATE_DIR / name
    if not path.is_file():
        available = ", ".join(list_templates()) or "none"
        raise FileNotFoundError(f"Unknown template {name!r} (available: {available})")
    return path.read_text(encoding="utf-8")


def list_templates() -> list[str]:
    """Names of all shipped templates."""
    if not TEMPLATE_DIR.is_dir():
        return []
    return sorted(p.name for p in TEMPLATE_DIR.iterdir() if p.is_file())


def render_template(name: str, placeholders: Mapping[str, str]) -> str:
    """Load a shipped template and render it strictly."""
    return render(load_template(name), placeholders, name=name)
