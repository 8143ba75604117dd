"""statehistory command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``statehistory`` script).
"""

from statehistory.cli.main import cli

__all__ = ["cli"]
