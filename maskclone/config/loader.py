"""Config file loading with template expansion.

Config files are read from any location :func:`maskclone.aws.s3.read_location`
understands, expanded, then parsed as YAML into a :class:`MaskConfig` layered
over the built-in defaults.

Supported template actions::

    {{ env "NAME" }}            value of $NAME, or "" when unset
    {{ env "NAME" "default" }}  value of $NAME, or "default"
    {{ must_env "NAME" }}       value of $NAME; error when unset
    {{ now "%Y%m%d" }}          current local time, strftime-formatted
"""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from maskclone.aws.s3 import read_location
from maskclone.config.models import MaskConfig
from maskclone.errors import ConfigurationError

logger = logging.getLogger(__name__)

_ACTION_RE = re.compile(r"\{\{-?\s*([A-Za-z_]\w*)((?:\s+\"(?:[^\"\\]|\\.)*\")*)\s*-?\}\}")
_ARG_RE = re.compile(r"\"((?:[^\"\\]|\\.)*)\"")


def _unescape(arg: str) -> str:
    return arg.replace('\\"', '"').replace("\\\\", "\\")


def render_config_template(
    text: str,
    *,
    environ: Optional[Mapping[str, str]] = None,
    now: Optional[Callable[[], datetime]] = None,
) -> str:
    """Expand ``{{ ... }}`` actions in *text*.

    Raises :class:`ConfigurationError` on an unknown action, a wrong
    argument count, or a ``must_env`` variable that is not set.
    """
    env = os.environ if environ is None else environ
    clock = now or datetime.now

    def _expand(match: "re.Match[str]") -> str:
        func = match.group(1)
        args: List[str] = [_unescape(a) for a in _ARG_RE.findall(match.group(2))]

        if func == "env":
            if len(args) not in (1, 2):
                raise ConfigurationError(f"env takes 1 or 2 arguments: {match.group(0)}")
            default = args[1] if len(args) == 2 else ""
            return env.get(args[0]) or default
        if func == "must_env":
            if len(args) != 1:
                raise ConfigurationError(f"must_env takes 1 argument: {match.group(0)}")
            if args[0] not in env:
                raise ConfigurationError(f"environment variable {args[0]} is not defined")
            return env[args[0]]
        if func == "now":
            if len(args) > 1:
                raise ConfigurationError(f"now takes at most 1 argument: {match.group(0)}")
            current = clock()
            return current.strftime(args[0]) if args else current.isoformat()
        raise ConfigurationError(f"unknown template function {func!r}")

    return _ACTION_RE.sub(_expand, text)


def parse_config(text: str, *, environ: Optional[Mapping[str, str]] = None) -> MaskConfig:
    """Expand and parse config *text*; return it layered over the defaults."""
    rendered = render_config_template(text, environ=environ)
    try:
        raw: Dict[str, Any] = yaml.safe_load(rendered) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid config YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError("config file must contain a mapping at the top level")

    try:
        file_cfg = MaskConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid config: {exc}") from exc
    return MaskConfig.defaults().merge_in(file_cfg)


def load_config(
    location: str,
    *,
    reader: Callable[[str], bytes] = read_location,
    environ: Optional[Mapping[str, str]] = None,
) -> MaskConfig:
    """Load a config file from *location* (path, ``file://`` or ``s3://``)."""
    logger.debug("Loading config from %s", location)
    data = reader(location)
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigurationError(f"config {location} is not valid UTF-8") from exc
    return parse_config(text, environ=environ)
