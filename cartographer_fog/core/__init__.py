"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants (precision, world bounds, level-of-detail defaults)
- exceptions: Custom exception hierarchy
"""
