"""Command-line runner and configuration for the fitness tracker client."""
