"""
Garage Operator - A Kubernetes operator for the Garage object storage service.

This operator manages Garage deployments declaratively with:
- Garage instances (configuration, credentials, service and workload)
- Automatic node layout registration
- Buckets with quotas
- Access keys with per-bucket permissions and credential secrets
"""

__version__ = "0.2.2"
