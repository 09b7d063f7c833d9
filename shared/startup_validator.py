"""
Startup configuration validation module.

Catches misconfigurations at startup (fail-fast) rather than when the first
candidate tries to pay.

Usage:
    from shared.startup_validator import validate_startup_config, StartupValidationError

    try:
        validate_startup_config()
    except StartupValidationError as e:
        logger.critical(f"Startup blocked: {e}")
        raise
"""

import logging
from decimal import Decimal

from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)

PLACEHOLDER_MARKER = "placeholder"


class StartupValidationError(Exception):
    """Raised when critical startup validation fails."""

    pass


def validate_startup_config(settings: Settings | None = None) -> dict[str, bool]:
    """
    Validate critical configuration at startup.

    Performs tiered validation:
    - TIER 1 (CRITICAL): Block startup if any fail
    - TIER 2 (IMPORTANT): Warn but allow startup

    Returns:
        dict of {check_name: passed} for all validations

    Raises:
        StartupValidationError: If any CRITICAL check fails
    """
    settings = settings or get_settings()
    results: dict[str, bool] = {}
    critical_failures: list[str] = []

    # =========================================================================
    # TIER 1: CRITICAL (block startup if any fail)
    # =========================================================================

    # 1. Stripe keys are real keys
    for name, prefix in (
        ("STRIPE_SECRET_KEY", "sk_"),
        ("STRIPE_PUBLISHABLE_KEY", "pk_"),
        ("STRIPE_WEBHOOK_SECRET", "whsec_"),
    ):
        value = getattr(settings, name)
        if not value or PLACEHOLDER_MARKER in value:
            critical_failures.append(f"{name} is placeholder - set your Stripe key")
            results[name.lower()] = False
        elif not value.startswith(prefix):
            critical_failures.append(f"{name} should start with '{prefix}'")
            results[name.lower()] = False
        else:
            results[name.lower()] = True
            logger.info(f"  [OK] {name} configured")

    # 2. Platform fee rate within [0, 1]
    if not (Decimal("0") <= settings.PLATFORM_FEE_RATE <= Decimal("1")):
        critical_failures.append(
            f"PLATFORM_FEE_RATE must be between 0 and 1, got {settings.PLATFORM_FEE_RATE}"
        )
        results["platform_fee_rate"] = False
    else:
        results["platform_fee_rate"] = True

    # 3. Reservation TTL and sweep interval positive
    if settings.PENDING_PAYMENT_TTL_MINUTES <= 0:
        critical_failures.append("PENDING_PAYMENT_TTL_MINUTES must be positive")
        results["pending_payment_ttl"] = False
    else:
        results["pending_payment_ttl"] = True

    if settings.RESERVATION_EXPIRATION_CHECK_INTERVAL_SECONDS <= 0:
        critical_failures.append("RESERVATION_EXPIRATION_CHECK_INTERVAL_SECONDS must be positive")
        results["expiration_interval"] = False
    else:
        results["expiration_interval"] = True

    # =========================================================================
    # TIER 2: IMPORTANT (warn but allow startup)
    # =========================================================================

    # 4. Database URL format validation
    if not settings.DATABASE_URL.startswith("postgresql+asyncpg://"):
        logger.warning("DATABASE_URL should use asyncpg driver: postgresql+asyncpg://...")
        results["database_url_format"] = False
    else:
        results["database_url_format"] = True

    # 5. Sweep interval shorter than the TTL, otherwise slots stay held long past expiry
    if settings.RESERVATION_EXPIRATION_CHECK_INTERVAL_SECONDS > settings.PENDING_PAYMENT_TTL_MINUTES * 60:
        logger.warning(
            "RESERVATION_EXPIRATION_CHECK_INTERVAL_SECONDS exceeds the pending payment TTL"
        )
        results["expiration_interval_vs_ttl"] = False
    else:
        results["expiration_interval_vs_ttl"] = True

    # 6. SMTP credentials (optional; verification emails disabled without them)
    if not (settings.SMTP_USERNAME and settings.SMTP_PASSWORD):
        logger.info("  [INFO] SMTP not configured - email notifications disabled")
        results["smtp_configured"] = False
    else:
        results["smtp_configured"] = True
        logger.info("  [OK] SMTP configured")

    # =========================================================================
    # Summary and result
    # =========================================================================

    passed = sum(1 for v in results.values() if v)
    total = len(results)
    logger.info(f"Startup validation: {passed}/{total} checks passed")

    if critical_failures:
        logger.critical("=" * 60)
        logger.critical("STARTUP BLOCKED - Critical configuration errors:")
        for i, failure in enumerate(critical_failures, 1):
            logger.critical(f"  {i}. {failure}")
        logger.critical("=" * 60)
        raise StartupValidationError(
            f"Critical startup validation failed ({len(critical_failures)} errors): "
            f"{'; '.join(critical_failures)}"
        )

    return results
