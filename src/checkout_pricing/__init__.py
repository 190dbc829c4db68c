"""
Checkout Pricing Package

Cart fee/discount pipeline for an e-commerce checkout. Recomputes quantity
discounts, loyalty (VIP) discounts and payment-method surcharges on every
cart change and installs them as one atomically replaced adjustment set.
"""

__version__ = "1.0.0"
