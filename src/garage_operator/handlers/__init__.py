"""
Handlers package - Contains all Kopf event handlers for Garage resources.

This package organizes handlers by resource type:
- garage.py: Garage instance events
- bucket.py: Bucket events, routed to their instance
- access_key.py: AccessKey and credential Secret events, routed to their instance
- triggers.py: Event filtering and key mapping shared by the handlers
"""
