from .controller import SelectionController
from .highlight import HighlightFilter, build_highlight

__all__ = [
    "HighlightFilter",
    "SelectionController",
    "build_highlight",
]
