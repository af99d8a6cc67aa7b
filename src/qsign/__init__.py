"""qsign - remote signing orchestration for verifiable credential issuance.

Delegates credential signatures to a Qualified Trust Service Provider (QTSP)
speaking the Cloud Signature Consortium (CSC) v2 protocol, to an on-prem
DSS-style signing server, or to an in-process signer for development.

Note: The in-memory signer produces unsigned artifacts (alg "none") and must
never be enabled in production.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
