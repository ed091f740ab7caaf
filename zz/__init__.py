"""zz - terminal client for the codex app-server.

Drives multi-turn conversations with a ``codex app-server`` backend over
newline-delimited JSON and renders streamed markdown to the terminal.
"""

__version__ = "0.1.0"
