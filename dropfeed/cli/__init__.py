"""Command line interface for the feed ranking engine."""
