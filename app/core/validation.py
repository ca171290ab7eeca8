"""
Provider Validation Module
Checks webhook, completion and database settings before the API starts serving
"""
import os
import logging
from typing import Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""
    provider: str
    setting: str
    is_valid: bool
    message: str
    warning: bool = False


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class ProviderValidator:
    """
    Validates provider configurations at startup.

    Missing required settings are errors. Missing optional settings are
    warnings, promoted to errors in strict mode (production).
    """

    # (env var, description, format check)
    REQUIRED_ENV_VARS: Dict[str, List[Tuple[str, str, Optional[Callable[[str], bool]]]]] = {
        "telephony": [("TWILIO_AUTH_TOKEN", "Twilio webhook signature verification", None)],
        "llm": [("GROQ_API_KEY", "Groq completion provider for AskBob", None)],
        "database": [
            ("SUPABASE_URL", "Supabase project URL", _is_http_url),
            ("SUPABASE_SERVICE_KEY", "Supabase service key", None),
        ],
    }

    OPTIONAL_ENV_VARS: Dict[str, List[Tuple[str, str, Optional[Callable[[str], bool]]]]] = {
        "telephony": [("PUBLIC_BASE_URL", "Public base URL for webhook signatures", _is_http_url)],
        "auth": [("SUPABASE_JWT_SECRET", "Bearer token signature verification", None)],
    }

    def __init__(self, strict: bool = False):
        self.strict = strict
        self.results: List[ValidationResult] = []

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        """
        Validate all provider configurations.

        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []

        for provider, vars_list in self.REQUIRED_ENV_VARS.items():
            for env_var, description, check in vars_list:
                self._check(provider, env_var, description, check, required=True)

        for provider, vars_list in self.OPTIONAL_ENV_VARS.items():
            for env_var, description, check in vars_list:
                self._check(provider, env_var, description, check, required=False)

        all_valid = all(r.is_valid for r in self.results)
        return all_valid, self.results

    def _check(
        self,
        provider: str,
        env_var: str,
        description: str,
        check: Optional[Callable[[str], bool]],
        required: bool,
    ) -> None:
        value = os.getenv(env_var)

        if not value:
            if required:
                # Webhooks still fail closed per request when the token is absent
                self._add(provider, env_var, False, f"{description} requires {env_var} to be set")
            else:
                self._add(
                    provider, env_var, not self.strict,
                    f"{description} not configured (optional)", warning=True,
                )
            return

        if check is not None and not check(value):
            self._add(provider, env_var, False, f"{env_var} is not a valid http(s) URL")
            return

        self._add(provider, env_var, True, f"{description} configured")

    def _add(self, provider: str, setting: str, is_valid: bool, message: str, warning: bool = False):
        self.results.append(ValidationResult(
            provider=provider,
            setting=setting,
            is_valid=is_valid,
            message=message,
            warning=warning,
        ))

    def log_results(self):
        """Log all validation results."""
        for r in self.results:
            if not r.is_valid:
                logger.error(f"[config] {r.provider}: {r.message}")
            elif r.warning:
                logger.warning(f"[config] {r.provider}: {r.message}")
            else:
                logger.info(f"[config] {r.provider}: {r.message}")

    def get_error_summary(self) -> Optional[str]:
        """Get summary of errors for exception message."""
        errors = [r for r in self.results if not r.is_valid]
        if not errors:
            return None

        lines = ["Provider configuration errors:"]
        for r in errors:
            lines.append(f"  - {r.setting}: {r.message}")
        return "\n".join(lines)


def validate_providers_on_startup(strict: bool = False) -> None:
    """
    Validate all providers at startup.

    Args:
        strict: If True, missing optional settings fail startup too

    Raises:
        RuntimeError: If required configuration is missing or malformed
    """
    validator = ProviderValidator(strict=strict)
    all_valid, _ = validator.validate_all()
    validator.log_results()

    if not all_valid:
        raise RuntimeError(validator.get_error_summary())

    logger.info("All provider configurations validated successfully")
