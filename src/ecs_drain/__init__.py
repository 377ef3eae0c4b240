"""
ECS Drain
Drains ECS container instances ahead of Auto Scaling scale-in and Spot
interruptions.
"""

__version__ = "1.0.0"
