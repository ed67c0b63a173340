from .allocation import AllocationTableBuilder, AllocationTableRow

__all__ = ["AllocationTableBuilder", "AllocationTableRow"]
