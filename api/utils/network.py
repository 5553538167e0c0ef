"""Source-address checks for inbound provider callbacks."""
from __future__ import annotations

import ipaddress
from typing import Iterable, Optional


def is_ip_allowed(remote_ip: Optional[str], allowlist: Optional[Iterable[str]]) -> bool:
    """Return True when `remote_ip` matches an entry of `allowlist`.

    Entries are single addresses or CIDR blocks. An empty or missing
    allowlist permits everything; an unparsable remote address permits
    nothing. Malformed entries are skipped.
    """
    entries = list(allowlist or [])
    if not entries:
        return True
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip.strip())
    except ValueError:
        return False
    for entry in entries:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry.strip()):
                return True
        except ValueError:
            continue
    return False
