"""
Declarative base for the module engine tables.

Kept apart from bhv360.models so that bhv360.database.session can import
it without pulling in the model modules.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
