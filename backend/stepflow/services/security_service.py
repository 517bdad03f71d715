# /stepflow/services/security_service.py

import hmac
import hashlib
import re

# Webhook signature verification and inbound identifier hygiene.

_CONVERSATION_ID_RE = re.compile(r"^[A-Za-z0-9:_\-.@+]{1,128}$")


class SecurityService:
    @staticmethod
    def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> bool:
        if not signature or not signature.startswith('sha256='):
            return False
        expected_signature = hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected_signature, signature[7:])

    @staticmethod
    def sign_payload(payload: bytes, secret: str) -> str:
        return "sha256=" + hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()

    @staticmethod
    def is_valid_conversation_id(conversation_id: str) -> bool:
        """Conversation ids become storage keys, so only a safe character set is accepted."""
        return bool(conversation_id and _CONVERSATION_ID_RE.match(conversation_id))
