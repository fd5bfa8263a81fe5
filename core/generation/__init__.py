"""AI generation: message model, capability adapter, sandbox tools and the step loop.

Submodules are imported directly (``core.generation.loop`` etc.) so that the
session state store can depend on the message model without a cycle.
"""
