"""UI panels: product catalog and shopping cart."""
from .cart import CartPanel, CartPanelState
from .catalog import CatalogPanel

__all__ = [
    "CartPanel",
    "CartPanelState",
    "CatalogPanel",
]
