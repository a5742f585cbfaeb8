"""
Gating Service for the Workspace Gating Layer.
"""
