"""Presentation helpers for the CLI: output rendering and input parsing."""
