"""Read-only query selectors."""

from warehouse_kernel.selectors.base import BaseSelector
from warehouse_kernel.selectors.movement_selector import MovementSelector

__all__ = ["BaseSelector", "MovementSelector"]
