"""
captainhook - Hook Templates
Renders the shell scripts written into the hooks directory.

Every generated script carries GENERATED_MARKER on its second line. The
installer only ever deletes files that contain it, so hand-written hooks
are never removed.
"""

from ..core.models import GitHook


# =============================================================================
# Template
# =============================================================================

GENERATED_MARKER = "# captainhook: generated hook, do not edit"

HOOK_TEMPLATE = """#!/bin/sh
{marker}
# Event: {event}
# Re-run `captainhook install` after changing the configuration.

{command}
"""


def render_hook(hook: GitHook, command: str) -> str:
    """
    Renders the script for one hook event.

    The command is substituted verbatim: it is a single shell command line
    supplied by the user and runs under /bin/sh when Git fires the event.
    """
    return HOOK_TEMPLATE.format(
        marker=GENERATED_MARKER,
        event=hook.hook_name,
        command=command.strip("\n"),
    )


def is_generated(content: str) -> bool:
    """True if the script was written by captainhook."""
    return GENERATED_MARKER in content.splitlines()
