"""
Utility modules for the AAS Twin Engine.
"""
