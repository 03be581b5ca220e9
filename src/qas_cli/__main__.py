"""Allow running qas-cli as a module: python -m qas_cli."""

from qas_cli.cli import main

if __name__ == "__main__":
    main()
