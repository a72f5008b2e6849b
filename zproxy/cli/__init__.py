"""Command line interface for zproxy."""
