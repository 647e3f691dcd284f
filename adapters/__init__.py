"""
Certificate Store Adapters

Implementations of the certificate store boundary used by the signing engine.
"""
