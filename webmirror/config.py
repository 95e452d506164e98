"""Run options for a mirror and their environment-variable overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Dict, Mapping, Optional

LOGGER = logging.getLogger(__name__)

# Link recursion bound; fixed by the core and not a run option.
MAX_DEPTH = 3

ENV_PREFIX = "WEBMIRROR_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class MirrorOptions:
    """Tunables for a single mirror run."""

    resource_batch_size: int = 5
    link_batch_size: int = 2
    resource_batch_pause: float = 0.2
    text_attempt_timeout: float = 20.0
    direct_text_timeout: float = 15.0
    text_total_timeout: float = 45.0
    binary_attempt_timeout: float = 20.0
    text_backoff: float = 1.0
    binary_backoff: float = 0.5
    use_relays: bool = True
    include_subdomains: bool = False
    localize_links: bool = False


# Environment variable suffix -> MirrorOptions field.
ENV_FIELDS: Dict[str, str] = {
    "RESOURCE_BATCH_SIZE": "resource_batch_size",
    "LINK_BATCH_SIZE": "link_batch_size",
    "BATCH_PAUSE": "resource_batch_pause",
    "TEXT_TIMEOUT": "text_attempt_timeout",
    "DIRECT_TIMEOUT": "direct_text_timeout",
    "TEXT_TOTAL_TIMEOUT": "text_total_timeout",
    "BINARY_TIMEOUT": "binary_attempt_timeout",
    "TEXT_BACKOFF": "text_backoff",
    "BINARY_BACKOFF": "binary_backoff",
    "USE_RELAYS": "use_relays",
    "INCLUDE_SUBDOMAINS": "include_subdomains",
    "LOCALIZE_LINKS": "localize_links",
}


def _convert(name: str, raw: str, default: object) -> object:
    value = raw.strip()
    if isinstance(default, bool):
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"expected a boolean, got {raw!r}")
    if isinstance(default, int):
        converted = int(value)
        if converted < 1:
            raise ValueError(f"expected a positive integer, got {raw!r}")
        return converted
    converted_float = float(value)
    if converted_float < 0:
        raise ValueError(f"expected a non-negative number, got {raw!r}")
    return converted_float


def load_options_from_env(
    environ: Optional[Mapping[str, str]] = None,
    base: Optional[MirrorOptions] = None,
) -> MirrorOptions:
    """Build MirrorOptions from ``WEBMIRROR_*`` environment variables.

    Invalid values are logged and the default is kept.
    """
    env = os.environ if environ is None else environ
    options = base or MirrorOptions()
    defaults = {f.name: getattr(options, f.name) for f in fields(options)}

    overrides: Dict[str, object] = {}
    for suffix, field_name in ENV_FIELDS.items():
        key = ENV_PREFIX + suffix
        raw = env.get(key)
        if raw is None or not raw.strip():
            continue
        try:
            overrides[field_name] = _convert(field_name, raw, defaults[field_name])
        except ValueError as exc:
            LOGGER.warning(
                "Ignoring %s=%r (%s); keeping %r.", key, raw, exc, defaults[field_name]
            )

    return replace(options, **overrides) if overrides else options
