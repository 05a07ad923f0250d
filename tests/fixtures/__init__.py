"""
GrantMatch Test Fixtures Package
Reusable factories and fake completion clients.
"""

from .factories import *
from .fakes import *
