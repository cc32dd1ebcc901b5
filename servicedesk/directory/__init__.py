"""
Directory Module
================

Organizational hierarchy (departments, units, users) consulted by the
approval guard and by the assignment engine's technician pool.
"""

from servicedesk.directory.entities import IOrgDirectory, OrgUser

__all__ = ["IOrgDirectory", "OrgUser"]
