"""Git credential helper protocol: request decoding and the per-invocation handler."""

from git_app_auth.protocol.handler import ProtocolHandler, handle_request
from git_app_auth.protocol.request import CredentialRequest, format_response

__all__ = ["CredentialRequest", "ProtocolHandler", "format_response", "handle_request"]
