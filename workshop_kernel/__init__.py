"""
Workshop Kernel - shared inventory core

Infrastructure used by every operations engine:
- Per-location InventoryRecord entity with non-negative stock
- Optimistic transactions with bounded retry-on-conflict
- Typed error hierarchy with machine-readable codes
- Structured JSON logging
- Injectable clock for deterministic timestamps
"""

__version__ = "0.1.0"
