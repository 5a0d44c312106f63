"""
Tests package - Test suite for the Garage operator.

Contains:
- unit/: Unit tests for individual components and end-to-end scenarios
  driven against in-memory fakes of the Kubernetes and Garage APIs
- fixtures/: Sample custom resources
"""
