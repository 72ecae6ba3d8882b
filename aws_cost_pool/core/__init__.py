"""
Core modules for AWS Cost Pool.

This package contains the pricing catalog, the tiered cost calculator,
the pooled cost allocator and the pooling service.
"""
