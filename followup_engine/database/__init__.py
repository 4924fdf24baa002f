"""
Database module - lead store models and operations
"""

from .models import *
from .crud import *
from .init_db import DatabaseManager
