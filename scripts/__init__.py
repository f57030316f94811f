"""Command-line scripts for the ESM analysis."""
