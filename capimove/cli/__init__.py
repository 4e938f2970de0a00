"""capimove command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``capimove`` script).
"""

from capimove.cli.main import cli

__all__ = ["cli"]
