"""Décodage des exports de marketplaces."""

from diag_ecom.parsers.decoder import SUPPORTED_EXTENSIONS, decode, is_supported

__all__ = ["SUPPORTED_EXTENSIONS", "decode", "is_supported"]
