"""stagegate CLI — Typer-based command-line interface.

Provides the ``stagegate`` command with subcommands for validating the
topology, triggering runs, delivering approval decisions and inspecting
run state. All output uses Rich for formatted terminal display.
"""
