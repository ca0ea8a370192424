"""
robot_loop: discrete-time state-space control loops for robot mechanisms.
"""

__version__ = "0.1.0"
