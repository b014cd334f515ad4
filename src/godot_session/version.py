"""Package version.

Bump rules:
- Patch (0.1.x): bug fixes, receiver script fixes
- Minor (0.x.0): new tools, new receiver commands, new settings
- Major (x.0.0): wire format changes between controller and receiver
"""

__version__ = "0.1.0"
