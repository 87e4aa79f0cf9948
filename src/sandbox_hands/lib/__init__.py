"""Core library: configuration, sandboxes, hands, and session streaming.

Primary namespaces:
- ``sandbox_hands.lib.sandbox`` for isolated execution backends.
- ``sandbox_hands.lib.hands`` for agent command construction and runners.
- ``sandbox_hands.lib.session`` for the per-request streaming controller.
"""
