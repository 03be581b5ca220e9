"""CLI package for qas-cli."""

from qas_cli.cli.commands import app


def main() -> None:
    """Main entry point for the CLI."""
    app()


__all__ = ["app", "main"]
