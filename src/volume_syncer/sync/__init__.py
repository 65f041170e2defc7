"""
Synchronization core: request model, strategies, factory, safe replace and
the single-flight orchestrator.
"""
