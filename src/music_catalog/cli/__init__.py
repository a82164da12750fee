"""Command line interface for Music Catalog."""
