from .store import InMemoryCertificateStore

__all__ = ["InMemoryCertificateStore"]
