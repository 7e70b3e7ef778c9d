"""
Exceptions for DocVault
Every error carries the HTTP status it is surfaced with, so the API layer has a single catcher
"""


class DocVaultError(Exception):
    # general container for errors
    status_code = 500


class ValidationError(DocVaultError):
    # raised on a malformed or missing required field
    status_code = 400


class UnauthorizedError(DocVaultError):
    # raised when a session or bearer token is missing or invalid
    status_code = 401


class AuthorizationError(DocVaultError):
    # raised on ownership or token-scope violations
    status_code = 403


class IntegrityError(DocVaultError):
    # raised when a signature over a sensitive field does not match
    status_code = 403


class NotFoundError(DocVaultError):
    # raised when a reference does not resolve
    status_code = 404


class BlobNotFoundError(NotFoundError):
    # raised when a blob reference points at nothing in the blob store
    pass


class UpstreamStorageError(DocVaultError):
    # raised when the blob store or metadata store fails
    status_code = 500


class CryptoFailure(DocVaultError):
    # raised on missing key material or a decryption mismatch
    status_code = 500


class ConfigurationError(CryptoFailure):
    # raised when a required secret is not configured
    pass


class RateLimitedError(AuthorizationError):
    # raised by a PIN attempt limiter that refuses further attempts
    status_code = 429
