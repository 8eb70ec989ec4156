"""
Startup Validation Module

Fail fast on configuration the ordering engine cannot run safely without:
1. Required settings present (secret key, database URL)
2. Database reachable
3. Ordering/listing settings within sane bounds
4. Blueprint registration tracked for the startup log
"""

import logging
from typing import Dict, List, Optional, Tuple, Any
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import text

logger = logging.getLogger(__name__)


class StartupValidationError(RuntimeError):
    """Raised when production startup finds critical failures."""


@dataclass
class ValidationResult:
    """Result of a validation check."""
    name: str
    passed: bool
    message: str
    severity: str = "error"  # error, warning, info
    remediation: Optional[str] = None


@dataclass
class StartupReport:
    """Startup validation report."""
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    environment: str = "unknown"
    validations: List[ValidationResult] = field(default_factory=list)
    ready: bool = False

    def add_validation(self, result: ValidationResult):
        self.validations.append(result)

    def has_critical_failures(self) -> bool:
        return any(v.severity == "error" and not v.passed for v in self.validations)

    def failures(self) -> List[ValidationResult]:
        return [v for v in self.validations if not v.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "environment": self.environment,
            "ready": self.ready,
            "validations": [
                {
                    "name": v.name,
                    "passed": v.passed,
                    "message": v.message,
                    "severity": v.severity,
                    "remediation": v.remediation
                }
                for v in self.validations
            ],
            "summary": {
                "total_validations": len(self.validations),
                "passed": sum(1 for v in self.validations if v.passed),
                "failed": sum(1 for v in self.validations if not v.passed),
            }
        }


class StartupValidator:
    """
    Validates a configured Flask app before it serves requests.

    Checks:
    1. Required configuration keys
    2. Session secret strength
    3. Database connectivity
    4. Ordering engine settings
    """

    REQUIRED_CONFIG = [
        ("SECRET_KEY", "Session/token signing key - set SESSION_SECRET"),
        ("SQLALCHEMY_DATABASE_URI", "Database connection string - set DATABASE_URL"),
    ]

    DEV_SECRET = 'dev-secret-change-me'

    def __init__(self, app, db=None):
        self.app = app
        self.db = db
        self.report = StartupReport(environment=self._detect_environment())

    def _detect_environment(self) -> str:
        if self.app.config.get("TESTING"):
            return "testing"
        if self.app.config.get("DEBUG"):
            return "development"
        return "production"

    def is_production(self) -> bool:
        return self.report.environment == "production"

    def validate_required_config(self) -> None:
        """Check all required configuration keys are set."""
        for key, description in self.REQUIRED_CONFIG:
            if self.app.config.get(key):
                self.report.add_validation(ValidationResult(
                    name=f"config:{key}",
                    passed=True,
                    message=f"{key} is configured",
                ))
            else:
                self.report.add_validation(ValidationResult(
                    name=f"config:{key}",
                    passed=False,
                    message=f"Missing required: {key}",
                    remediation=description,
                ))

    def validate_secret_key_strength(self) -> None:
        """Validate session secret key meets security requirements."""
        secret = self.app.config.get("SECRET_KEY") or ""

        if secret == self.DEV_SECRET or len(secret) < 32:
            self.report.add_validation(ValidationResult(
                name="security:secret_key",
                passed=not self.is_production(),
                message=f"SECRET_KEY is a development value or too short ({len(secret)} chars, need 32+)",
                severity="error" if self.is_production() else "warning",
                remediation="Generate a strong random key: python -c 'import secrets; print(secrets.token_hex(32))'"
            ))
        else:
            self.report.add_validation(ValidationResult(
                name="security:secret_key",
                passed=True,
                message="SECRET_KEY meets length requirements",
            ))

    def validate_database_connection(self) -> None:
        """Test database connectivity through the app's engine."""
        if self.db is None:
            self.report.add_validation(ValidationResult(
                name="db:connection",
                passed=True,
                message="Database check skipped (no extension supplied)",
                severity="info"
            ))
            return

        try:
            with self.app.app_context():
                with self.db.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            self.report.add_validation(ValidationResult(
                name="db:connection",
                passed=True,
                message="Database connection successful",
            ))
        except Exception as e:
            self.report.add_validation(ValidationResult(
                name="db:connection",
                passed=False,
                message=f"Database connection failed: {str(e)[:100]}",
                remediation="Check DATABASE_URL and ensure the database is accessible"
            ))

    def validate_ordering_settings(self) -> None:
        """Lock timeout and page sizes must be positive integers."""
        checks = [
            ("ORDERING_LOCK_TIMEOUT_MS", "error"),
            ("TASKS_DEFAULT_PER_PAGE", "error"),
            ("TASKS_MAX_PER_PAGE", "error"),
        ]
        for key, severity in checks:
            value = self.app.config.get(key)
            ok = isinstance(value, int) and value > 0
            self.report.add_validation(ValidationResult(
                name=f"ordering:{key}",
                passed=ok,
                message=f"{key}={value!r}" if ok else f"{key} must be a positive integer, got {value!r}",
                severity=severity,
                remediation=None if ok else f"Set {key} to a positive integer",
            ))

        default_pp = self.app.config.get("TASKS_DEFAULT_PER_PAGE") or 0
        max_pp = self.app.config.get("TASKS_MAX_PER_PAGE") or 0
        if default_pp > max_pp:
            self.report.add_validation(ValidationResult(
                name="ordering:per_page_bounds",
                passed=False,
                message=f"TASKS_DEFAULT_PER_PAGE ({default_pp}) exceeds TASKS_MAX_PER_PAGE ({max_pp})",
                severity="warning",
            ))

    def run_all_validations(self) -> StartupReport:
        """Run all validation checks and return the report."""
        logger.info(f"[STARTUP] validating configuration for environment: {self.report.environment}")

        self.validate_required_config()
        self.validate_secret_key_strength()
        self.validate_database_connection()
        self.validate_ordering_settings()

        self.report.ready = not self.report.has_critical_failures()

        summary = self.report.to_dict()["summary"]
        logger.info(f"[STARTUP] validations: {summary['passed']}/{summary['total_validations']} passed")

        for v in self.report.failures():
            log = logger.error if v.severity == "error" else logger.warning
            log(f"[STARTUP]  - {v.name}: {v.message}")
            if v.remediation:
                log(f"[STARTUP]    Fix: {v.remediation}")

        return self.report

    def fail_if_not_ready(self) -> None:
        """
        Fail fast if critical validations fail in production.

        In development, log warnings but continue.
        """
        if not self.report.ready:
            if self.is_production():
                logger.critical("[STARTUP] application cannot start - critical configuration missing")
                raise StartupValidationError(
                    ", ".join(v.name for v in self.report.failures() if v.severity == "error")
                )
            logger.warning("[STARTUP] continuing despite validation failures")


class BlueprintRegistry:
    """
    Track blueprint loading for the startup log.
    """

    def __init__(self, app=None):
        self.app = app
        self.loaded: List[str] = []
        self.failed: List[Tuple[str, str]] = []

    def register(self, module_path: str, blueprint_name: str, url_prefix: Optional[str] = None,
                 critical: bool = True) -> bool:
        """
        Register a blueprint by import path.

        Args:
            module_path: Python module path (e.g., 'routes.auth')
            blueprint_name: Name of blueprint variable in module
            url_prefix: Optional URL prefix for blueprint
            critical: If True, re-raise on failure

        Returns:
            True if registered successfully, False otherwise
        """
        try:
            module = __import__(module_path, fromlist=[blueprint_name])
            blueprint = getattr(module, blueprint_name)

            if url_prefix:
                self.app.register_blueprint(blueprint, url_prefix=url_prefix)
            else:
                self.app.register_blueprint(blueprint)

            self.loaded.append(f"{module_path}.{blueprint_name}")
            logger.debug(f"[STARTUP] loaded blueprint {module_path}.{blueprint_name}")
            return True

        except Exception as e:
            error_msg = f"{type(e).__name__}: {str(e)[:100]}"
            self.failed.append((f"{module_path}.{blueprint_name}", error_msg))

            if critical:
                logger.error(f"[STARTUP] failed to load {module_path}: {error_msg}")
                raise
            logger.warning(f"[STARTUP] degraded - failed to load {module_path}: {error_msg}")
            return False

    def get_status(self) -> Dict[str, Any]:
        """Get registration status summary."""
        return {
            "loaded_count": len(self.loaded),
            "failed_count": len(self.failed),
            "loaded": self.loaded,
            "failed": [{"name": n, "error": e} for n, e in self.failed],
            "health": "healthy" if not self.failed else "degraded"
        }


def run_startup_validation(app, db=None) -> StartupReport:
    """
    Run startup validation for an app and enforce it in production.
    """
    validator = StartupValidator(app, db)
    report = validator.run_all_validations()
    validator.fail_if_not_ready()
    return report
