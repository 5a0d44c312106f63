"""Sample custom resources shared by the unit tests."""
