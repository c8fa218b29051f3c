"""Token Authority: credential verification, token issuance, refresh rotation and revocation."""
