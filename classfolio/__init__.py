"""
classfolio - order settlement for a classroom investment simulation
"""

__version__ = "0.1.0"
