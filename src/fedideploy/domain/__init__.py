"""Domain layer — deployment inputs, topology, bootstrap stages, relays, follow targets.

This layer depends only on stdlib, pydantic, and NetworkX (topology ordering).
It must never import from services, infrastructure, commands, or config.
"""
