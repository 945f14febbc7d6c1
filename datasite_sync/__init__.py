"""
DatasiteSync Client

Keeps a local folder of datasites in step with a sync server using
binary deltas.

Author: DatasiteSync Project
"""

__version__ = "1.0.0"
