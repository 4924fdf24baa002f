"""
Domain value objects
"""

from .models import *
