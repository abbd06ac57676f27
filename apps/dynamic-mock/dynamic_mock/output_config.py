"""Log output format selection for the mock server."""

import os
from typing import Literal


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"


def get_log_format(cli_override: str | None = None, environ: dict[str, str] | None = None) -> LogFormat:
    """
    Get the log format with priority: CLI parameter > Environment variable > Default (console).

    Maps output format to log format:
    - auto/rich -> console (with colors)
    - plain -> plain (no colors, simple text)
    - json -> json

    Args:
        cli_override: Optional CLI parameter value that takes precedence
        environ: Environment mapping, defaults to ``os.environ``

    Returns:
        LogFormat value
    """
    for candidate in (cli_override, (environ if environ is not None else os.environ).get(ENV_VAR_NAME)):
        if not candidate:
            continue
        format_lower = candidate.lower()
        if format_lower == "json":
            return "json"
        if format_lower == "plain":
            return "plain"
        if format_lower in ("auto", "rich", "console"):
            return "console"

    return "console"
