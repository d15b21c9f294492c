from .copy_processor import CopyOnlyImageProcessor
from .pillow_processor import PillowImageProcessor

__all__ = ["CopyOnlyImageProcessor", "PillowImageProcessor"]
