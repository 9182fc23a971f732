"""
Constants for the Catalog Composer application.

This module defines system-wide constants including:
- Application metadata
- Product and variation field limits
- SKU encodings for composition scopes and variation references
- Composition, backup and migration defaults
- Common error messages
"""

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Catalog Composer"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"
DATABASE_FILENAME = "catalog_composer.db"

# ============================================================================
# Field Limits
# ============================================================================

SKU_PATTERN = r"^[A-Z0-9-]+$"
MAX_SKU_LENGTH = 50
MAX_PRODUCT_NAME_LENGTH = 100
MAX_VARIATION_TYPE_NAME_LENGTH = 50
MAX_VARIATION_NAME_LENGTH = 50
MAX_VARIATION_ITEM_NAME_LENGTH = 100

# Composition keys may carry a variation id after the SKU
MAX_COMPOSITION_KEY_LENGTH = 120

# ============================================================================
# SKU Encodings
# ============================================================================

# "<productSku>#<variationId>": variation reference and composite-variation scope
VARIATION_SCOPE_SEPARATOR = "#"

# "<productSku>:<variationId>": legacy form, always rejected
LEGACY_VARIATION_SEPARATOR = ":"

# "<productSku>-VAR-<variationId>": hyphen-marker form
VARIATION_SKU_MARKER = "-VAR-"

# ============================================================================
# Composition / Variation Defaults
# ============================================================================

MAX_COMPOSITION_DEPTH = 10
DEFAULT_VARIATION_NAME_PREFIX = "Variation"

# ============================================================================
# Backup / Migration Defaults
# ============================================================================

MAX_BACKUPS_PER_PRODUCT = 10
BACKUP_EXPIRY_DAYS = 7
BACKUP_USER_AGENT = "server"

MERGE_STRATEGY_FIRST_VARIATION = "first-variation"
MERGE_STRATEGY_MERGE_ALL = "merge-all"
MERGE_STRATEGIES = [MERGE_STRATEGY_FIRST_VARIATION, MERGE_STRATEGY_MERGE_ALL]

# ============================================================================
# Error Messages
# ============================================================================

ERROR_INVALID_SKU = "SKU must contain only uppercase letters, numbers, and hyphens"
ERROR_RESERVED_SKU_MARKER = "SKU must not contain \"-VAR-\"; it marks a variation reference"
