"""
IVR survey session engine: call lifecycle, keypad decoding, scripts, statistics.
"""
