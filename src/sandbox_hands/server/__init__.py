"""HTTP entry point for app mode."""
