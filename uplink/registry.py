# uplink/registry.py
# Session Registry: tracks which connections have joined and under which alias.
# Aliases are display names only. They are not unique, and a direct message to a
# shared alias goes to whichever session registered it first.

import ipaddress
from dataclasses import dataclass

# Placeholder shown when the transport address cannot be parsed.
MASK_PLACEHOLDER = "x.x.x.x"


@dataclass(frozen=True)
class Session:
    connection_id: str
    alias: str
    masked_address: str
    joined_at: int

    def to_dict(self):
        return {
            "id": self.connection_id,
            "alias": self.alias,
            "maskedAddress": self.masked_address,
            "joinedAt": self.joined_at,
        }


def mask_address(address):
    """
    Derives a display-only form of a client's network address.

    IPv4 keeps the first two octets ("192.168.x.x"), IPv6 keeps the first hextet
    ("2001:xxxx:xxxx:xxxx"). IPv4-mapped IPv6 addresses are treated as IPv4.
    Anything else becomes MASK_PLACEHOLDER.

    Args:
        address (str | tuple | None): Host string, or a (host, port, ...) tuple as
            reported by the transport.

    Returns:
        str: The masked address. Never the real address.
    """
    host = address[0] if isinstance(address, (tuple, list)) and address else address
    if not isinstance(host, str):
        return MASK_PLACEHOLDER
    try:
        ip = ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return MASK_PLACEHOLDER
    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    if ip.version == 4:
        octets = str(ip).split(".")
        return f"{octets[0]}.{octets[1]}.x.x"
    first = ip.exploded.split(":")[0]
    return f"{first}:xxxx:xxxx:xxxx"


def fallback_alias(connection_id):
    """Generated alias for clients that join without choosing one."""
    return f"User_{connection_id[:4]}"


class SessionRegistry:
    """In-memory map of connection id -> Session, kept in join order."""

    def __init__(self):
        self._sessions = {}

    def register(self, connection_id, raw_alias, address, joined_at):
        """
        Creates and stores the session for a connection.

        Args:
            connection_id (str): Transport-assigned unique id.
            raw_alias (str): Alias requested by the client; blank means "generate one".
            address: Real transport address, used only to derive the masked address.
            joined_at (int): Join timestamp in milliseconds.

        Returns:
            Session: The stored session.
        """
        alias = (raw_alias or "").strip() or fallback_alias(connection_id)
        session = Session(
            connection_id=connection_id,
            alias=alias,
            masked_address=mask_address(address),
            joined_at=joined_at,
        )
        self._sessions[connection_id] = session
        return session

    def lookup(self, connection_id):
        return self._sessions.get(connection_id)

    def lookup_by_alias(self, alias):
        for session in self._sessions.values():
            if session.alias == alias:
                return session.connection_id
        return None

    def remove(self, connection_id):
        """Removes a session. Returns the removed Session, or None if it was not registered."""
        return self._sessions.pop(connection_id, None)

    def list_all(self):
        return list(self._sessions.values())

    def __contains__(self, connection_id):
        return connection_id in self._sessions

    def __len__(self):
        return len(self._sessions)
