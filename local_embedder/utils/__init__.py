"""
Utilities -- vector math, scratch buffers, model registry.
"""
