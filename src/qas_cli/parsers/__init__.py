"""Report parsers producing canonical test results."""

from qas_cli.parsers.registry import get_parser, reads_directory

__all__ = ["get_parser", "reads_directory"]
