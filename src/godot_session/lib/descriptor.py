"""Edits to ``project.godot`` needed to register the input receiver.

``project.godot`` is an INI-like file. The only changes a session makes
are adding one entry to the ``[autoload]`` section (creating the section
when missing) and, optionally, forcing the window out of fullscreen. The
original bytes are kept elsewhere and written back verbatim on teardown,
so nothing here needs to be reversible on its own.

Examples:
    Inject into a project without an autoload section::

        >>> text = '[application]\\nconfig/name="X"\\n'
        >>> print(inject_autoload(text, "_McpInputReceiver", ".mcp_input_receiver.gd"))
        [application]
        config/name="X"
        <BLANKLINE>
        [autoload]
        <BLANKLINE>
        _McpInputReceiver="*res://.mcp_input_receiver.gd"
        <BLANKLINE>
"""

import re

PROJECT_FILE = "project.godot"
RECEIVER_SCRIPT_NAME = ".mcp_input_receiver.gd"
RECEIVER_AUTOLOAD = "_McpInputReceiver"

AUTOLOAD_HEADER = re.compile(r"^\[autoload\][ \t]*(?=\r?$)", re.MULTILINE)
FULLSCREEN_MODE = re.compile(r"^(display/window/size/mode=)[34]\b", re.MULTILINE)


def autoload_entry(name: str, script: str) -> str:
    """Autoload line registering ``script`` (relative to ``res://``) as a singleton."""
    return f'{name}="*res://{script}"'


def has_autoload(text: str, name: str) -> bool:
    return re.search(rf"^{re.escape(name)}=", text, re.MULTILINE) is not None


def inject_autoload(text: str, name: str, script: str) -> str:
    """Register ``script`` under ``[autoload]``, creating the section if needed.

    New lines use the file's own line ending (CRLF or LF).
    """
    entry = autoload_entry(name, script)
    nl = "\r\n" if "\r\n" in text else "\n"
    match = AUTOLOAD_HEADER.search(text)
    if match is not None:
        return f"{text[: match.end()]}{nl}{nl}{entry}{text[match.end() :]}"
    if text and not text.endswith("\n"):
        text += nl
    return f"{text}{nl}[autoload]{nl}{nl}{entry}{nl}"


def remove_autoload(text: str, name: str) -> str:
    """Drop the ``name=...`` autoload line, if present."""
    return re.sub(rf"^{re.escape(name)}=.*(?:\r?\n)?", "", text, flags=re.MULTILINE)


def force_windowed_mode(text: str) -> str:
    """Replace fullscreen (3) and exclusive fullscreen (4) window modes with windowed (0)."""
    return FULLSCREEN_MODE.sub(r"\g<1>0", text)


def prepare_descriptor(text: str, *, windowed: bool = True) -> str:
    """Return the descriptor text a session runs with."""
    modified = inject_autoload(text, RECEIVER_AUTOLOAD, RECEIVER_SCRIPT_NAME)
    if windowed:
        modified = force_windowed_mode(modified)
    return modified
