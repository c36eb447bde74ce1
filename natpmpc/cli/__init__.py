"""Command line interface for natpmpc."""
