"""
Daily Brew CLI command implementations.
"""
