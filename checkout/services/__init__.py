"""
Checkout - Services Package
"""
