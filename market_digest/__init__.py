"""
Market digest: newsletter subscriptions and daily digest delivery.
"""

__version__ = '0.1.0'
