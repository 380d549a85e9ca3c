"""Command line interface for datagraph."""
