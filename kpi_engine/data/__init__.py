"""
Record Data Module
"""
from .frames import FrameRecordSource
from .generators import DatasetGenerator

__all__ = ["FrameRecordSource", "DatasetGenerator"]
