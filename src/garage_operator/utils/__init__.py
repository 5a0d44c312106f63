"""
Utils package - Utility modules for Garage operator functionality.

Contains helper modules for:
- Garage admin API interactions
- Kubernetes resource management
- Projection of a Garage spec into cluster objects
- The reconciliation work queue
"""

from garage_operator.utils.work_queue import WorkQueue

__all__ = ["WorkQueue"]
