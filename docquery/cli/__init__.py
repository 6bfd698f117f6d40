"""Command-line tools for docquery."""
