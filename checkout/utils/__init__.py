"""
Checkout - Utils Package
"""
