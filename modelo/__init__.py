"""
Modelo: marketplace connecting models and professionals.
"""

__version__ = "0.1.0"
