from .http_client import PermitIssuerClient

__all__ = ["PermitIssuerClient"]
