"""Portal assistant: voice/text command interpreter for the healthcare portal.

Single source of truth for the package version.
"""

__version__ = "0.3.0"
