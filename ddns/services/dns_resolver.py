"""Resolver client – reads back the address currently published for a name."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import dns.asyncresolver
import dns.exception
import dns.rdatatype
import dns.resolver

from ddns.services.errors import NotFoundError, UpstreamError

logger = logging.getLogger(__name__)

_FAMILIES = ((dns.rdatatype.A, 4), (dns.rdatatype.AAAA, 6))


@dataclass(frozen=True)
class ResolvedAddress:
    address: str
    family: int


class DnsResolver:
    def __init__(
        self,
        nameservers: list[str] | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._resolver = dns.asyncresolver.Resolver(configure=not nameservers)
        if nameservers:
            self._resolver.nameservers = nameservers
        self._timeout = timeout

    async def resolve(self, name: str) -> ResolvedAddress:
        """Return the first A (else AAAA) address for *name*.

        Raises ``NotFoundError`` if the name does not exist or has no
        address records, ``UpstreamError`` on any other DNS failure.
        """
        for rdtype, family in _FAMILIES:
            try:
                answer = await self._resolver.resolve(
                    name, rdtype=rdtype, lifetime=self._timeout
                )
            except dns.resolver.NXDOMAIN as e:
                raise NotFoundError("No such alias.") from e
            except dns.resolver.NoAnswer:
                continue
            except dns.exception.DNSException as e:
                logger.error("Lookup of %s failed: %s", name, e)
                raise UpstreamError(f"DNS lookup failed: {e}") from e

            for rdata in answer:
                return ResolvedAddress(address=rdata.address, family=family)

        raise NotFoundError("No such alias.")
