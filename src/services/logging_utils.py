"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across composition, backup and migration
operations.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="migrate_composite_to_variations",
        outcome="success",
        product_sku="DINING-SET-001",
        migrated_items=2,
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "catalog_composer.services"

# LogRecord attributes that cannot be overwritten through `extra`
_RESERVED = frozenset(
    {"name", "msg", "args", "message", "module", "filename", "lineno", "exc_info", "stack_info"}
)


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance with the 'catalog_composer.services' prefix.

    Example:
        >>> logger = get_service_logger("src.services.backup_service")
        >>> logger.name
        'catalog_composer.services.backup_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter so handlers can emit
    structured records.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "create_backup", "rollback_migration")
        outcome: Outcome description (e.g., "success", "blocked", "error")
        level: Log level (default: INFO)
        **context: Additional context fields
            Common fields:
            - product_sku: Product being processed
            - operation_id: Migration operation id
            - backup_id: Backup snapshot id
            - error: Error message if outcome is "error"

    Example:
        >>> log_operation(
        ...     logger,
        ...     operation="rollback_migration",
        ...     outcome="error",
        ...     level=logging.ERROR,
        ...     product_sku="DINING-SET-001",
        ...     error="Rollback failed: ...",
        ... )
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **{key: value for key, value in context.items() if key not in _RESERVED},
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
