"""
Core signing components: certificate loading and validation,
canonicalization, digests, signature composition and injection.
"""
