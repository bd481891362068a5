"""Compile Sui Move sources in throwaway workspaces and proxy Sui CLI commands."""

__version__ = "0.1.0"
