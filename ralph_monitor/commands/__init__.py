"""Subcommand implementations for the ralph-monitor CLI."""
