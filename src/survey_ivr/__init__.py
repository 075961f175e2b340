"""
Survey IVR backend: turns phone calls into ordered survey dialogues.
"""

__version__ = "0.1.0"
