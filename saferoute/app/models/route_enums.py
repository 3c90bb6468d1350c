"""
Route-related enumerations.
"""

import enum


class PathPointRole(str, enum.Enum):
    """
    Role of a point within a saved path.

    A path starts with exactly one SOURCE and ends with exactly one
    DESTINATION; everything in between is a WAYPOINT.
    """
    SOURCE = "SOURCE"
    WAYPOINT = "WAYPOINT"
    DESTINATION = "DESTINATION"
