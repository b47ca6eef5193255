"""cronspine command-line interface (Typer + rich)."""
