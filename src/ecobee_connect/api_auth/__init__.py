"""
Authentication module for the ecobee API.

Provides the token stores, the authorizing transport, the PIN workflow and the
`ecobee-register` CLI.
"""

__all__: list[str] = []
