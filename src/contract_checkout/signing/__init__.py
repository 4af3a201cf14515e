"""Signing — PDF signature stamping and the signing wizard."""

from contract_checkout.signing.compositor import SignatureCompositor, SigningStep, decode_signature
from contract_checkout.signing.pdf import embed_signature, to_pdf_coordinates

__all__ = [
    "SignatureCompositor",
    "SigningStep",
    "decode_signature",
    "embed_signature",
    "to_pdf_coordinates",
]
