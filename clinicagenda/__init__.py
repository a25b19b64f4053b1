"""
clinicagenda - appointment booking backend for a small clinic.
"""

__version__ = "1.0.0"
