# uplink/authority.py
# Command Authority: checks privileged requests against the configured admin key.

import hmac


class CommandAuthority:
    """
    Validates purge requests.

    Failed attempts are not counted; a wrong key only produces an error reply.

    Args:
        admin_key (str): Shared secret that authorizes a purge.
    """

    def __init__(self, admin_key):
        self._admin_key = admin_key

    def authorize_purge(self, supplied_key):
        """Returns True only when `supplied_key` equals the configured key."""
        if not isinstance(supplied_key, str) or not supplied_key or not self._admin_key:
            return False
        return hmac.compare_digest(supplied_key.encode("utf-8"), self._admin_key.encode("utf-8"))
