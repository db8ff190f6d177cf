"""Command-line interface for imgassembly."""
