"""
Router module.

Handler manifest loading, intent classification and target-name dispatch.
"""

__all__ = ["manifest", "router", "schemas", "handler_registry"]
