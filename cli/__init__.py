"""Command line entry point for nnkit."""
