"""
Database utilities for DynamoDB operations.

This module provides a clean interface for all database operations.
Imports are organized by resource type for easy navigation.
"""

# ============================================================================
# Core Infrastructure
# ============================================================================

from .base import (
    # Table management
    tables,
    DynamoDBTables,
    require_table,

    # Decorators
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
)

from .helpers import (
    paginated_query,
    build_update_expression,
)

# ============================================================================
# Recurring Pattern Operations
# ============================================================================

from .recurring_patterns import (
    find_pattern_by_account_and_key,
    get_pattern,
    list_space_patterns,
    list_patterns_by_space,
    create_pattern,
    upsert_pattern,
    update_pattern_tracking,
    update_pattern_status,
    delete_pattern,
    DynamoDBPatternStore,
)

# ============================================================================
# Transaction Operations
# ============================================================================

from .transactions import (
    list_space_transactions,
    DynamoDBTransactionSource,
)

# ============================================================================
# __all__ Export List
# ============================================================================

__all__ = [
    # Table management
    'tables',
    'DynamoDBTables',
    'require_table',

    # Decorators
    'dynamodb_operation',
    'retry_on_throttle',
    'monitor_performance',

    # Helpers
    'paginated_query',
    'build_update_expression',

    # Recurring pattern operations
    'find_pattern_by_account_and_key',
    'get_pattern',
    'list_space_patterns',
    'list_patterns_by_space',
    'create_pattern',
    'upsert_pattern',
    'update_pattern_tracking',
    'update_pattern_status',
    'delete_pattern',
    'DynamoDBPatternStore',

    # Transaction operations
    'list_space_transactions',
    'DynamoDBTransactionSource',
]
