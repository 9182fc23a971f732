"""Service layer exception classes for Catalog Composer.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application. Every message is meant to be
shown to a user as-is.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── ProductNotFound
    │   └── RecordNotFound
    ├── BusinessRuleError
    │   ├── VariationNotFound
    │   ├── VariationProductMismatch
    │   ├── LegacySkuFormatError
    │   ├── VariableProductNotAllowed
    │   ├── CircularDependencyError
    │   ├── DuplicateCompositionItemError
    │   └── CompositionDepthExceeded
    ├── StorageError
    │   └── BackupNotFoundError
    └── MigrationError
"""

from typing import Any, Dict, List, Optional, Union


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class ValidationError(ServiceError):
    """Raised when user input fails field-level validation.

    Args:
        errors: A single message or a list of messages
        field: Name of the offending field, when there is exactly one
        code: Machine-readable reason (e.g. "required", "unique", "not_found")

    Example:
        >>> raise ValidationError("Weight must be a positive number", "weight", "positive")
        ValidationError: Weight must be a positive number
    """

    def __init__(
        self,
        errors: Union[str, List[str]],
        field: Optional[str] = None,
        code: Optional[str] = None,
    ):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        self.field = field
        self.code = code
        super().__init__("; ".join(self.errors))


class BusinessRuleError(ServiceError):
    """Raised when an operation would break a named business rule.

    Args:
        message: User-facing explanation
        rule: Rule identifier (e.g. "composite_weight_rule")
        context: Values that triggered the rule

    Example:
        >>> raise BusinessRuleError("...", "referential_integrity", {"sku": "CHAIR-001"})
    """

    def __init__(self, message: str, rule: str, context: Optional[Dict[str, Any]] = None):
        self.rule = rule
        self.context = context or {}
        super().__init__(message)


class StorageError(ServiceError):
    """Raised when the persistence layer fails.

    Args:
        message: Description of the failed operation
        operation: Repository operation name (create, update, delete, ...)
        cause: Underlying exception, if any
    """

    def __init__(self, message: str, operation: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(message)


class MigrationError(ServiceError):
    """Raised when a composite/variation migration step fails.

    Args:
        message: User-facing explanation
        code: Failure code (PRODUCT_NOT_FOUND, NO_VARIATIONS, MIGRATION_FAILED,
            ROLLBACK_FAILED)
        step: Identifier of the step that failed
        recoverable: False when the caller must not retry automatically
    """

    def __init__(
        self,
        message: str,
        code: str,
        step: Optional[str] = None,
        recoverable: bool = True,
    ):
        self.code = code
        self.step = step
        self.recoverable = recoverable
        super().__init__(message)


# Lookup failures


class ProductNotFound(ValidationError):
    """Raised when a product cannot be found by SKU.

    Example:
        >>> raise ProductNotFound("CHAIR-001")
        ProductNotFound: Product with SKU 'CHAIR-001' not found
    """

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Product with SKU '{sku}' not found", "sku", "not_found")


class RecordNotFound(ValidationError):
    """Raised when a record cannot be found by its public id."""

    def __init__(self, entity_name: str, record_id: str):
        self.entity_name = entity_name
        self.record_id = record_id
        super().__init__(f"{entity_name} with ID '{record_id}' not found", "id", "not_found")


class BackupNotFoundError(StorageError):
    """Raised when a migration backup cannot be found."""

    def __init__(self, backup_id: str):
        self.backup_id = backup_id
        super().__init__(f"Backup not found: {backup_id}", "restore")


# Composition rules


class VariationNotFound(BusinessRuleError):
    """Raised when a variation combination cannot be resolved.

    Example:
        >>> raise VariationNotFound("var-1", "DINING-SET-001")
        VariationNotFound: Variation 'var-1' not found for product 'DINING-SET-001'
    """

    def __init__(self, variation_id: str, product_sku: Optional[str] = None):
        self.variation_id = variation_id
        self.product_sku = product_sku
        if product_sku:
            message = f"Variation '{variation_id}' not found for product '{product_sku}'"
        else:
            message = f"Variation '{variation_id}' not found"
        super().__init__(
            message,
            "variation_exists",
            {"variation_id": variation_id, "product_sku": product_sku},
        )


class VariationProductMismatch(BusinessRuleError):
    """Raised when a variation reference names the wrong parent product."""

    def __init__(self, variation_id: str, product_sku: str, actual_product_sku: str):
        self.variation_id = variation_id
        self.product_sku = product_sku
        self.actual_product_sku = actual_product_sku
        super().__init__(
            f"Variation '{variation_id}' does not belong to product '{product_sku}'",
            "variation_ownership",
            {
                "variation_id": variation_id,
                "product_sku": product_sku,
                "actual_product_sku": actual_product_sku,
            },
        )


class LegacySkuFormatError(BusinessRuleError):
    """Raised for the retired ``SKU:variationId`` reference form."""

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(
            f"Legacy variation SKU format not supported: '{sku}'. "
            f"Use '<SKU>#<variationId>' instead.",
            "legacy_sku_format",
            {"sku": sku},
        )


class VariableProductNotAllowed(BusinessRuleError):
    """Raised when a variable product is used directly as a composition child."""

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(
            f"Variable products cannot be used directly in compositions. "
            f"Product '{sku}' has variations - use specific variation combinations instead.",
            "variable_parent_exclusion",
            {"sku": sku},
        )


class CircularDependencyError(BusinessRuleError):
    """Raised when adding an edge would make a product contain itself."""

    def __init__(self, parent_sku: str, child_sku: str):
        self.parent_sku = parent_sku
        self.child_sku = child_sku
        super().__init__(
            f"Adding '{child_sku}' to '{parent_sku}' would create a circular dependency",
            "no_cycles",
            {"parent_sku": parent_sku, "child_sku": child_sku},
        )


class DuplicateCompositionItemError(BusinessRuleError):
    """Raised when a child already appears directly under the same parent."""

    def __init__(self, parent_sku: str, child_sku: str):
        self.parent_sku = parent_sku
        self.child_sku = child_sku
        super().__init__(
            f"Product '{child_sku}' is already part of the composition of '{parent_sku}'",
            "unique_child",
            {"parent_sku": parent_sku, "child_sku": child_sku},
        )


class CompositionDepthExceeded(BusinessRuleError):
    """Raised when a composition tree nests deeper than the configured limit."""

    def __init__(self, sku: str, max_depth: int):
        self.sku = sku
        self.max_depth = max_depth
        super().__init__(
            f"Maximum composition depth exceeded ({max_depth} levels) while expanding '{sku}'",
            "max_depth",
            {"sku": sku, "max_depth": max_depth},
        )


# Error classification

ERROR_TYPE_VALIDATION = "validation"
ERROR_TYPE_BUSINESS_RULE = "business_rule"
ERROR_TYPE_STORAGE = "storage"
ERROR_TYPE_MIGRATION = "migration"
ERROR_TYPE_UNKNOWN = "unknown"


def classify_error(error: BaseException) -> Dict[str, Any]:
    """
    Classify an exception into one of the service error categories.

    Args:
        error: Any exception raised by the service layer

    Returns:
        Dict with ``type``, ``message`` and ``original_error``
    """
    if isinstance(error, ValidationError):
        error_type = ERROR_TYPE_VALIDATION
    elif isinstance(error, BusinessRuleError):
        error_type = ERROR_TYPE_BUSINESS_RULE
    elif isinstance(error, StorageError):
        error_type = ERROR_TYPE_STORAGE
    elif isinstance(error, MigrationError):
        error_type = ERROR_TYPE_MIGRATION
    else:
        error_type = ERROR_TYPE_UNKNOWN

    message = str(error) or "An unknown error occurred"
    return {"type": error_type, "message": message, "original_error": error}


def get_user_friendly_message(error: BaseException) -> str:
    """
    Short, actionable message for displaying an error to a user.

    Validation, business-rule and migration messages are already written for
    users; storage and unexpected errors are replaced with generic guidance.
    """
    classified = classify_error(error)
    if classified["type"] in (
        ERROR_TYPE_VALIDATION,
        ERROR_TYPE_BUSINESS_RULE,
        ERROR_TYPE_MIGRATION,
    ):
        return classified["message"]
    if classified["type"] == ERROR_TYPE_STORAGE:
        return "There was a problem saving your data. Please try again."
    return "Something went wrong. Please try again."
