"""
xtctl - Safe programmatic access to iptables and ip6tables.

Detects what the installed tool supports, serializes access to the
kernel ruleset and turns tool failures into structured errors.
"""

__version__ = "1.0.0"
__author__ = "xtctl maintainers"
