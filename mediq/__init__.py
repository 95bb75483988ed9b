"""MediQ OPD appointment lifecycle and availability sync service"""

__version__ = "1.0.0"
