import hashlib
import hmac


def verify_signature(
    payload_body: bytes, secret_token: str, signature_header: str
) -> bool:
    """
    Verify that the payload was sent by Bitbucket by validating the SHA256 signature.

    Args:
        payload_body: raw request body bytes
        secret_token: the webhook secret
        signature_header: the X-Hub-Signature header value ("sha256=<hex>")

    Returns:
        True if the signature is valid, False otherwise.
    """
    if not signature_header:
        # If no signature header is present, we cannot verify authenticity.
        return False

    hash_object = hmac.new(
        secret_token.encode("utf-8"), msg=payload_body, digestmod=hashlib.sha256
    )
    expected_signature = "sha256=" + hash_object.hexdigest()

    return hmac.compare_digest(expected_signature, signature_header)
