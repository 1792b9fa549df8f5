"""Request validation.

Runs before anything touches disk or spawns a process. Checks are applied
in a fixed order and only the first violation is reported:

1. source code present and within the size limit
2. credential is 64 hex characters (optional 0x prefix)
3. target address, when supplied (or required by the variant)
4. declared contract/module identifier
5. constructor arguments
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Pattern

CREDENTIAL_REGEX = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
ADDRESS_REGEX = re.compile(r"^0x[0-9a-fA-F]{40}$")
IDENTIFIER_REGEX = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Line and block comments plus single or double quoted literals
COMMENT_OR_STRING_REGEX = re.compile(
    r"//[^\n]*|/\*.*?(?:\*/|\Z)|\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'",
    re.DOTALL,
)

# Rejection codes
CODE_MISSING = "CodeMissing"
CODE_TOO_LONG = "CodeTooLong"
INVALID_CREDENTIAL = "InvalidCredential"
INVALID_ADDRESS = "InvalidAddress"
INVALID_IDENTIFIER = "InvalidIdentifier"
INVALID_CONSTRUCTOR_ARGS = "InvalidConstructorArgs"


@dataclass
class DeploymentRequest:
    """A single deployment submission. Never persisted."""

    source_code: Optional[str]
    credential: Optional[str]
    target_address: Optional[str] = None
    constructor_args: list[str] = field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"DeploymentRequest(code_length={len(self.source_code or '')}, "
            f"credential={self.credential_hint!r}, target_address={self.target_address!r}, "
            f"constructor_args={len(self.constructor_args)})"
        )

    @property
    def credential_hint(self) -> str:
        """Redacted credential prefix, safe for logs."""
        return redact_secret(self.credential)

    @property
    def bare_credential(self) -> str:
        """Credential without the 0x prefix."""
        value = self.credential or ""
        return value[2:] if value.startswith("0x") else value

    def scrub(self, text: str) -> str:
        """Remove every occurrence of the credential from text."""
        return scrub_secret(text, self.credential)


@dataclass
class ValidationLimits:
    """Size limits applied by the validator."""

    max_code_length: int = 50_000
    max_identifier_length: int = 50
    max_constructor_args: int = 16
    max_constructor_arg_length: int = 1024

    @classmethod
    def from_settings(cls, settings) -> "ValidationLimits":
        return cls(
            max_code_length=settings.max_code_length,
            max_identifier_length=settings.max_identifier_length,
            max_constructor_args=settings.max_constructor_args,
            max_constructor_arg_length=settings.max_constructor_arg_length,
        )


@dataclass
class ValidationResult:
    """Outcome of validation; code/reason are set only on failure."""

    is_valid: bool
    code: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def fail(cls, code: str, reason: str) -> "ValidationResult":
        return cls(is_valid=False, code=code, reason=reason)


def redact_secret(secret: Optional[str], visible: int = 6) -> str:
    """Return a short prefix of a secret followed by an ellipsis."""
    if not secret:
        return "(none)"
    return f"{secret[:visible]}..."


def scrub_secret(text: str, secret: Optional[str]) -> str:
    """Replace the secret (with or without 0x prefix) with a mask."""
    if not text or not secret:
        return text or ""
    bare = secret[2:] if secret.startswith("0x") else secret
    if not bare:
        return text
    return re.sub(re.escape(bare), "***", text, flags=re.IGNORECASE)


def strip_comments_and_strings(source_code: str) -> str:
    """Blank out comments and quoted literals, keeping line breaks."""

    def _blank(match: re.Match) -> str:
        return "\n" * match.group(0).count("\n") or " "

    return COMMENT_OR_STRING_REGEX.sub(_blank, source_code)


def declared_identifier(source_code: str, declaration: Optional[Pattern[str]]) -> Optional[str]:
    """Return the last contract/module name declared in the source.

    Comments and string literals are ignored. The last declaration wins so
    base contracts and helpers declared above the main one are skipped.
    """
    if declaration is None:
        return None
    names = declaration.findall(strip_comments_and_strings(source_code))
    return names[-1] if names else None


def validate_request(
    request: DeploymentRequest,
    limits: Optional[ValidationLimits] = None,
    declaration: Optional[Pattern[str]] = None,
    require_address: bool = False,
) -> ValidationResult:
    """Validate a deployment request.

    Args:
        request: The submission to check
        limits: Size limits (defaults apply when omitted)
        declaration: Variant-specific regex whose group 1 is the declared name
        require_address: Reject requests without a target address

    Returns:
        ValidationResult describing the first violation, if any
    """
    limits = limits or ValidationLimits()
    code = request.source_code

    if not isinstance(code, str) or not code.strip():
        return ValidationResult.fail(CODE_MISSING, "Contract code is required")
    if len(code) > limits.max_code_length:
        return ValidationResult.fail(
            CODE_TOO_LONG,
            f"Code too long. Maximum {limits.max_code_length} characters allowed",
        )

    credential = request.credential
    if not isinstance(credential, str) or not CREDENTIAL_REGEX.fullmatch(credential):
        return ValidationResult.fail(
            INVALID_CREDENTIAL,
            "Invalid private key format. Must be 64 hex characters (with or without 0x prefix)",
        )

    address = request.target_address
    if address is not None and address != "":
        if not isinstance(address, str) or not ADDRESS_REGEX.fullmatch(address):
            return ValidationResult.fail(
                INVALID_ADDRESS,
                "Invalid account address format. Must be 0x followed by 40 hex characters",
            )
    elif require_address:
        return ValidationResult.fail(INVALID_ADDRESS, "Account address is required")

    name = declared_identifier(code, declaration)
    if name is not None:
        if len(name) > limits.max_identifier_length:
            return ValidationResult.fail(
                INVALID_IDENTIFIER,
                f"Contract name too long. Maximum {limits.max_identifier_length} characters allowed",
            )
        if not IDENTIFIER_REGEX.fullmatch(name):
            return ValidationResult.fail(
                INVALID_IDENTIFIER,
                "Invalid contract name. Must start with letter or underscore "
                "and contain only alphanumeric characters and underscores",
            )

    args = request.constructor_args or []
    if len(args) > limits.max_constructor_args:
        return ValidationResult.fail(
            INVALID_CONSTRUCTOR_ARGS,
            f"Too many constructor arguments. Maximum {limits.max_constructor_args} allowed",
        )
    for arg in args:
        if not isinstance(arg, str) or "\x00" in arg:
            return ValidationResult.fail(
                INVALID_CONSTRUCTOR_ARGS, "Constructor arguments must be plain strings"
            )
        if len(arg) > limits.max_constructor_arg_length:
            return ValidationResult.fail(
                INVALID_CONSTRUCTOR_ARGS,
                f"Constructor argument too long. Maximum "
                f"{limits.max_constructor_arg_length} characters allowed",
            )

    return ValidationResult.ok()
