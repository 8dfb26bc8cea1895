"""
Core Utilities
--------------

Logging, exceptions, configuration and path defaults shared by the
topology and database packages.
"""
