"""
Reboot Operator

Coordinates rolling reboots across a fleet through machine annotations.
"""

__version__ = "1.0.0"
