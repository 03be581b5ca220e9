"""Core data model and exceptions shared by parsers and the upload engine."""
