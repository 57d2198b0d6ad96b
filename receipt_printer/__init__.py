"""
Bluetooth thermal receipt printing for the Teh Barudak POS.
"""

__version__ = "1.0.0"
