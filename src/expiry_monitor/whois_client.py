"""
WHOIS Client module for domain expiration lookups.

This module queries WHOIS servers over TCP port 43 and turns the free-text
reply into an ordered field mapping. It follows the registry's referral to
the registrar's WHOIS server when one is advertised, since thick registrar
records often carry the only expiration field.
"""

import asyncio
import re
import socket
from datetime import datetime, timedelta, timezone
from typing import Optional

from .audit_logger import AuditLogger
from .enums import WHOISErrorCode
from .exceptions import WhoisLookupError
from .models import WhoisRecord


IANA_WHOIS_SERVER = "whois.iana.org"
WHOIS_PORT = 43

# Lines that carry notices rather than data
COMMENT_PREFIXES = ("%", "#", ">>>", "NOTICE:", "TERMS OF USE:")

REFERRAL_FIELDS = ("registrarWhoisServer", "whoisServer", "refer")

_KEY_PATTERN = re.compile(r"^\s*([^:]{1,80}?)\s*:\s*(.*?)\s*$")


def camelize_field_name(name: str) -> str:
    """
    Convert a WHOIS field label into a mapping key.

    Labels with spaces become camelCase ("Registry Expiry Date" ->
    "registryExpiryDate"); single-word labels keep their punctuation
    ("paid-till" stays "paid-till").
    """
    words = name.strip().split()
    if not words:
        return ""
    if len(words) == 1:
        word = words[0]
        return word[:1].lower() + word[1:]
    head, *tail = words
    return head.lower() + "".join(w[:1].upper() + w[1:].lower() for w in tail)


def parse_whois_text(raw_response: str) -> WhoisRecord:
    """
    Parse a raw WHOIS reply into an ordered field mapping.

    Repeated fields (name servers, status lines) collect into a list.
    Lines without a "key: value" shape and empty values are ignored.
    """
    record: WhoisRecord = {}

    for line in raw_response.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(COMMENT_PREFIXES):
            continue

        match = _KEY_PATTERN.match(line)
        if not match:
            continue

        label, value = match.group(1), match.group(2)
        if not value or label.lower().startswith(("http", "https")):
            continue

        key = camelize_field_name(label)
        if not key:
            continue

        existing = record.get(key)
        if existing is None:
            record[key] = value
        elif isinstance(existing, list):
            if value not in existing:
                existing.append(value)
        elif existing != value:
            record[key] = [existing, value]

    return record


def merge_records(registry: WhoisRecord, registrar: WhoisRecord) -> WhoisRecord:
    """Merge a registrar record into a registry record; registry keys win."""
    merged = dict(registry)
    for key, value in registrar.items():
        merged.setdefault(key, value)
    return merged


class WhoisClient:
    """
    WHOIS client returning field mappings.

    The server for a TLD comes from a built-in table, otherwise from IANA's
    "refer:" answer, which is cached per client instance.
    """

    # Default WHOIS servers per TLD
    WHOIS_SERVERS: dict[str, str] = {
        "com": "whois.verisign-grs.com",
        "net": "whois.verisign-grs.com",
        "org": "whois.pir.org",
        "info": "whois.afilias.net",
        "biz": "whois.nic.biz",
        "io": "whois.nic.io",
        "co": "whois.nic.co",
        "de": "whois.denic.de",
        "eu": "whois.eu",
        "uk": "whois.nic.uk",
        "nl": "whois.domain-registry.nl",
        "fr": "whois.nic.fr",
        "ru": "whois.tcinet.ru",
        "app": "whois.nic.google",
        "dev": "whois.nic.google",
    }

    def __init__(
        self,
        timeout: float = 10.0,
        custom_servers: Optional[dict[str, str]] = None,
        follow_referrals: bool = True,
        simulation_mode: bool = False,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the WHOIS client.

        Args:
            timeout: Per-query timeout in seconds
            custom_servers: Optional custom WHOIS servers per TLD
            follow_referrals: Query the registrar server named by the registry
            simulation_mode: If True, no real network requests are made
            logger: Optional audit logger
        """
        self._timeout = timeout
        self._follow_referrals = follow_referrals
        self._simulation_mode = simulation_mode
        self._logger = logger

        self._servers = dict(self.WHOIS_SERVERS)
        if custom_servers:
            self._servers.update({k.lower(): v for k, v in custom_servers.items()})

    async def lookup(self, domain: str) -> WhoisRecord:
        """
        Look up a domain and return its WHOIS fields.

        Args:
            domain: The domain to query (canonical form)

        Returns:
            Ordered field mapping

        Raises:
            WhoisLookupError: On timeout, socket failure, missing server
                or an empty reply
        """
        if self._simulation_mode:
            return self._get_simulated_record(domain)

        tld = self._extract_tld(domain)
        server = await self.resolve_server(tld)

        raw_response = await self._query(domain, server)
        if not raw_response.strip():
            raise WhoisLookupError(
                code=WHOISErrorCode.EMPTY_RESPONSE.value,
                message=f"Empty WHOIS response from {server}",
                details={"domain": domain, "server": server},
            )

        record = parse_whois_text(raw_response)

        referral = self._find_referral(record, server)
        if referral and self._follow_referrals:
            try:
                registrar_raw = await self._query(domain, referral)
            except WhoisLookupError as e:
                self._log_debug(
                    f"Registrar referral to {referral} failed: {e.message}",
                    {"domain": domain, "server": referral},
                )
            else:
                record = merge_records(record, parse_whois_text(registrar_raw))

        return record

    async def resolve_server(self, tld: str) -> str:
        """
        Find the WHOIS server for a TLD.

        Raises:
            WhoisLookupError: If neither the table nor IANA names a server
        """
        server = self._servers.get(tld.lower())
        if server:
            return server

        iana_record = parse_whois_text(await self._query(tld, IANA_WHOIS_SERVER))
        refer = iana_record.get("refer") or iana_record.get("whois")
        if isinstance(refer, list):
            refer = refer[0]
        if not refer:
            raise WhoisLookupError(
                code=WHOISErrorCode.NO_SERVER.value,
                message=f"No WHOIS server known for TLD: {tld}",
                details={"tld": tld},
            )

        self._servers[tld.lower()] = refer
        return refer

    async def _query(self, query: str, server: str) -> str:
        try:
            return await self._execute_whois_query(query, server)
        except asyncio.TimeoutError:
            raise WhoisLookupError(
                code=WHOISErrorCode.TIMEOUT.value,
                message=f"WHOIS query to {server} timed out after {self._timeout}s",
                details={"query": query, "server": server},
            )
        except OSError as e:
            raise WhoisLookupError(
                code=WHOISErrorCode.NETWORK_ERROR.value,
                message=f"Socket error talking to {server}: {e}",
                details={"query": query, "server": server},
            )
        except Exception as e:
            # e.g. UnicodeError for a malformed referral host
            raise WhoisLookupError(
                code=WHOISErrorCode.NETWORK_ERROR.value,
                message=f"Unexpected error talking to {server}: {e}",
                details={"query": query, "server": server},
            )

    async def _execute_whois_query(self, query: str, server: str) -> str:
        """
        Execute the actual WHOIS query via socket.

        Args:
            query: Domain or TLD to query
            server: WHOIS server hostname

        Returns:
            Raw WHOIS response as string
        """
        loop = asyncio.get_running_loop()

        def _sync_query() -> str:
            with socket.create_connection((server, WHOIS_PORT), timeout=self._timeout) as sock:
                sock.sendall(f"{query}\r\n".encode("utf-8"))

                response_parts: list[bytes] = []
                while True:
                    data = sock.recv(4096)
                    if not data:
                        break
                    response_parts.append(data)

                return b"".join(response_parts).decode("utf-8", errors="replace")

        return await asyncio.wait_for(
            loop.run_in_executor(None, _sync_query),
            timeout=self._timeout,
        )

    def _find_referral(self, record: WhoisRecord, current_server: str) -> Optional[str]:
        for key in REFERRAL_FIELDS:
            value = record.get(key)
            if isinstance(value, list):
                value = value[0] if value else None
            if not value:
                continue
            server = re.sub(r"^(?:rwhois|whois|https?)://", "", value.strip()).rstrip("/")
            server = server.split(":", 1)[0]
            if server and server.lower() != current_server.lower():
                return server
        return None

    def _extract_tld(self, domain: str) -> str:
        parts = domain.lower().rstrip(".").split(".")
        return parts[-1] if parts else ""

    def get_supported_tlds(self) -> list[str]:
        """Return list of TLDs with known WHOIS servers."""
        return list(self._servers.keys())

    def _get_simulated_record(self, domain: str) -> WhoisRecord:
        """
        Return a synthetic record for dry runs.

        Domains starting with 'expiring-' expire in 10 days, 'unknown-'
        domains carry no expiration field, others expire in a year.
        """
        sld = domain.split(".")[0]
        record: WhoisRecord = {
            "domainName": domain.upper(),
            "registrar": "Example Registrar",
        }
        if sld.startswith("unknown-"):
            return record

        days = 10 if sld.startswith("expiring-") else 365
        expires = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=days)
        record["registryExpiryDate"] = expires.isoformat().replace("+00:00", "Z")
        return record

    def _log_debug(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.debug("WhoisClient", message, data)
