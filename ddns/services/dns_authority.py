"""DNS authority client – publishes A records via RFC 2136 dynamic update."""

from __future__ import annotations

import logging

import dns.asyncquery
import dns.exception
import dns.name
import dns.rcode
import dns.tsig
import dns.update

from ddns.services.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300


class DnsAuthority:
    """Sends ``REPLACE <name> <ttl> A <ip>`` updates to the zone's primary."""

    def __init__(
        self,
        zone: str,
        server: str,
        port: int = 53,
        timeout: float = 5.0,
        tsig_key_name: str = "",
        tsig_secret: str = "",
        tsig_algorithm: str = "hmac-sha256",
    ) -> None:
        self._zone = dns.name.from_text(zone)
        self._server = server
        self._port = port
        self._timeout = timeout
        self._tsig_key: dns.tsig.Key | None = None
        if tsig_key_name and tsig_secret:
            self._tsig_key = dns.tsig.Key(tsig_key_name, tsig_secret, tsig_algorithm)

    def build_update(self, name: str, ipv4: str, ttl: int = DEFAULT_TTL) -> dns.update.UpdateMessage:
        fqdn = dns.name.from_text(name)
        if not fqdn.is_subdomain(self._zone):
            raise UpstreamError(f"{name} is outside zone {self._zone}")
        msg = dns.update.UpdateMessage(
            self._zone,
            keyring=self._tsig_key,
        )
        msg.replace(fqdn.relativize(self._zone), ttl, "A", ipv4)
        return msg

    async def upsert_address(self, name: str, ipv4: str, ttl: int = DEFAULT_TTL) -> None:
        """Bind *name* to *ipv4*; raise ``UpstreamError`` unless the server says NOERROR."""
        try:
            msg = self.build_update(name, ipv4, ttl)
        except dns.exception.SyntaxError as e:
            raise UpstreamError(f"Cannot publish {ipv4!r} for {name}: {e}") from e

        try:
            response = await dns.asyncquery.tcp(
                msg, self._server, timeout=self._timeout, port=self._port
            )
        except (dns.exception.DNSException, OSError) as e:
            logger.error("DNS update for %s failed: %s", name, e)
            raise UpstreamError(f"DNS update failed: {e}") from e

        rcode = response.rcode()
        if rcode != dns.rcode.NOERROR:
            logger.error("DNS update for %s refused: %s", name, dns.rcode.to_text(rcode))
            raise UpstreamError(f"DNS update refused: {dns.rcode.to_text(rcode)}")

        logger.info("Published %s A %s (ttl=%d)", name, ipv4, ttl)
