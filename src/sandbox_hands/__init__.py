"""sandbox_hands: run a coding agent in a sandbox and stream its diff back."""

__version__ = "0.1.0"
