"""
Portfolio Platform
Shared SQLAlchemy handle.

Autoflush is off: pending rows reach the database only through
``unit_of_work.flush()`` / ``unit_of_work.commit()``, which stamp audit
fields first.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy(session_options={"autoflush": False})
