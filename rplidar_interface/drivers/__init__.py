"""
LiDAR Driver Implementations
============================

Available drivers:
- RPLidarDriver: For Slamtec RPLidar sensors (A1, A2, ...)

Add your own driver by implementing LidarBase.
"""

from .rplidar import RPLidarDriver

__all__ = [
    "RPLidarDriver",
]
