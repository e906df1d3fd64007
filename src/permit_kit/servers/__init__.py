from .apps import PermitIssuerServer
from .security import generate_token, verify_token, create_api_key, bearer_token_dependency

__all__ = [
    "PermitIssuerServer",
    "generate_token",
    "verify_token",
    "create_api_key",
    "bearer_token_dependency",
]
