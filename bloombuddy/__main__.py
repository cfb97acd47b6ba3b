"""
Module entry point for: python -m bloombuddy

Allows running the analyzer directly as a module:
    python -m bloombuddy analyze <document> [options]
    python -m bloombuddy check-key
    python -m bloombuddy serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
