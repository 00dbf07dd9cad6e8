"""
Domain validation and normalization module.

Configured domains are validated and normalized to a canonical form
(lowercase, IDNA) before they are stored, so every status record and
cache lookup is keyed by the same string.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

import idna

from expiry_monitor.enums import DomainValidationErrorCode
from expiry_monitor.exceptions import ValidationError
from expiry_monitor.models import DomainSpec


# Forbidden characters in domain names (control chars, spaces, special symbols)
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'           # Control characters
    r'\s'                        # Whitespace
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'  # Special symbols not allowed
)

# A TLD is alphabetic, or an IDNA A-label
TLD_PATTERN = re.compile(r"^(?:[a-z]{2,63}|xn--[a-z0-9-]{1,59})$")


@dataclass
class DomainValidationError:
    """Structured error information for domain validation failures."""

    code: DomainValidationErrorCode
    message: str
    details: dict


@dataclass
class DomainValidationResult:
    """Result of domain validation operation."""

    valid: bool
    canonical_domain: Optional[str]
    error: Optional[DomainValidationError]


class DomainValidator:
    """
    Validates and normalizes domain names.

    Handles:
    - Conversion to lowercase canonical form
    - IDNA encoding for international characters
    - Rejection of forbidden characters
    - TLD shape checks
    """

    def validate(self, raw_domain: str) -> DomainValidationResult:
        """
        Validate and normalize a domain string.

        Args:
            raw_domain: The raw domain string to validate

        Returns:
            DomainValidationResult with validation status and canonical form or error
        """
        if not isinstance(raw_domain, str) or not raw_domain.strip():
            return self._invalid(
                DomainValidationErrorCode.EMPTY_INPUT,
                "Domain input is empty",
                {"raw_input": raw_domain},
            )

        domain = raw_domain.strip().rstrip(".")

        if FORBIDDEN_CHARS_PATTERN.search(domain):
            return self._invalid(
                DomainValidationErrorCode.FORBIDDEN_CHARS,
                "Domain contains forbidden characters",
                {
                    "raw_input": raw_domain,
                    "forbidden_chars": FORBIDDEN_CHARS_PATTERN.findall(domain),
                },
            )

        try:
            canonical = self.normalize_to_canonical(domain)
        except ValidationError as e:
            return self._invalid(DomainValidationErrorCode.IDNA_ERROR, e.message, e.details)

        tld = self._extract_tld(canonical)
        if not tld or not TLD_PATTERN.match(tld):
            return self._invalid(
                DomainValidationErrorCode.INVALID_TLD,
                "Could not extract a valid TLD from domain",
                {"raw_input": raw_domain, "canonical": canonical},
            )

        return DomainValidationResult(
            valid=True,
            canonical_domain=canonical,
            error=None,
        )

    def normalize_to_canonical(self, domain: str) -> str:
        """
        Convert domain to canonical form (lowercase, IDNA-encoded).

        Raises:
            ValidationError: If IDNA encoding fails
        """
        domain_lower = domain.lower()

        if not any(ord(c) > 127 for c in domain_lower):
            return domain_lower

        try:
            return idna.encode(domain_lower, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code=DomainValidationErrorCode.IDNA_ERROR.value,
                message=f"IDNA encoding failed: {e}",
                details={"domain": domain, "idna_error": str(e)},
            )

    def canonicalize(self, raw_domain: str) -> str:
        """
        Return the canonical form of a domain.

        Raises:
            ValidationError: If the domain is invalid
        """
        result = self.validate(raw_domain)
        if not result.valid:
            raise ValidationError(
                code=result.error.code.value,
                message=f"Invalid domain {raw_domain!r}: {result.error.message}",
                details=result.error.details,
            )
        return result.canonical_domain

    def build_specs(self, entries: Iterable[dict]) -> list[DomainSpec]:
        """
        Validate configured domain entries into DomainSpecs.

        Args:
            entries: Dicts with a 'domain' key and optional 'description'

        Returns:
            Specs in input order

        Raises:
            ValidationError: On the first invalid or duplicate domain
        """
        specs: list[DomainSpec] = []
        seen: set[str] = set()

        for entry in entries:
            raw = entry.get("domain", "") if isinstance(entry, dict) else ""
            canonical = self.canonicalize(raw)
            if canonical in seen:
                raise ValidationError(
                    code=DomainValidationErrorCode.DUPLICATE.value,
                    message=f"Domain {canonical!r} is configured more than once",
                    details={"domain": canonical},
                )
            seen.add(canonical)

            specs.append(DomainSpec(
                domain=canonical,
                description=str(entry.get("description") or ""),
            ))

        return specs

    def _invalid(
        self, code: DomainValidationErrorCode, message: str, details: dict
    ) -> DomainValidationResult:
        return DomainValidationResult(
            valid=False,
            canonical_domain=None,
            error=DomainValidationError(code=code, message=message, details=details),
        )

    def _extract_tld(self, domain: str) -> Optional[str]:
        if not domain or "." not in domain:
            return None

        parts = domain.rsplit(".", 1)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            return None

        return parts[1].lower()
