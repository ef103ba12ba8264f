"""
Passive Monitor — wearable-style heart-rate screen.

Shows the latest heart-rate reading, lets the user toggle passive
monitoring, and records a manually triggered, time-bounded audio clip with
haptic feedback on start and stop.
"""

__version__ = "0.1.0"
__author__ = "passive_monitor"
