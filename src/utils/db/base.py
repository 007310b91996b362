"""
Core database infrastructure.

This module provides:
- DynamoDB table management
- Decorators for cross-cutting concerns
- Translation of boto errors into storage exceptions
"""

import os
import logging
import boto3
import time
from typing import Dict, Any, Optional, Tuple, Callable, TypeVar
from functools import wraps
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from services.recurring_patterns.exceptions import ConflictError, StorageError

# Configure logging
logger = logging.getLogger(__name__)

# Type variables
T = TypeVar('T')

CONDITIONAL_CHECK_FAILED = 'ConditionalCheckFailedException'


# ============================================================================
# Decorators
# ============================================================================

def dynamodb_operation(operation_name: Optional[str] = None):
    """
    Decorator for consistent DynamoDB error handling and logging.

    Features:
    - Automatic error logging with stack traces
    - Structured logging with operation context
    - Failed conditional writes raise ConflictError
    - Every other boto or item-parsing failure raises StorageError

    Usage:
        @dynamodb_operation("get_pattern")
        def get_pattern(space_id: str, pattern_id: str) -> Optional[RecurringPattern]:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            op_name = operation_name or func.__name__
            try:
                logger.debug(f"Starting {op_name}")
                result = func(*args, **kwargs)
                logger.debug(f"Successfully completed {op_name}")
                return result
            except ClientError as e:
                error_code = e.response.get('Error', {}).get('Code', 'Unknown')
                error_msg = e.response.get('Error', {}).get('Message', str(e))
                if error_code == CONDITIONAL_CHECK_FAILED:
                    logger.info(
                        f"Conditional check failed in {op_name}",
                        extra={'operation': op_name, 'error_code': error_code}
                    )
                    raise ConflictError(f"{op_name}: {error_msg}") from e
                logger.error(
                    f"DynamoDB error in {op_name}: {error_code} - {error_msg}",
                    exc_info=True,
                    extra={
                        'operation': op_name,
                        'error_code': error_code,
                        'function': func.__name__
                    }
                )
                raise StorageError(f"DynamoDB error in {op_name}: {error_code} - {error_msg}") from e
            except BotoCoreError as e:
                logger.error(
                    f"AWS client error in {op_name}: {str(e)}",
                    exc_info=True,
                    extra={'operation': op_name}
                )
                raise StorageError(f"AWS client error in {op_name}: {str(e)}") from e
            except ValidationError as e:
                logger.error(
                    f"Invalid stored data in {op_name}: {str(e)}",
                    exc_info=True,
                    extra={'operation': op_name}
                )
                raise StorageError(f"Invalid data in {op_name}: {str(e)}") from e
        return wrapper
    return decorator


def retry_on_throttle(
    max_attempts: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 5.0,
    exponential_base: float = 2,
    retry_on: Tuple[str, ...] = (
        'ProvisionedThroughputExceededException',
        'ThrottlingException',
        'RequestLimitExceeded'
    )
):
    """
    Decorator to retry DynamoDB operations on throttling with exponential backoff.

    delay = min(base_delay * exponential_base ** attempt, max_delay)

    Must sit inside ``dynamodb_operation`` so it still sees the raw ClientError.

    Usage:
        @dynamodb_operation("list_patterns")
        @retry_on_throttle(max_attempts=5, base_delay=0.1)
        def list_patterns(...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except ClientError as e:
                    error_code = e.response.get('Error', {}).get('Code', 'Unknown')
                    if error_code not in retry_on or attempt >= max_attempts - 1:
                        raise

                    delay = min(base_delay * (exponential_base ** attempt), max_delay)
                    logger.warning(
                        f"Throttled on {func.__name__} "
                        f"(attempt {attempt + 1}/{max_attempts}), "
                        f"retrying in {delay:.2f}s... "
                        f"Error: {error_code}"
                    )
                    time.sleep(delay)
            raise RuntimeError(f"Unexpected state in retry_on_throttle for {func.__name__}")
        return wrapper
    return decorator


def monitor_performance(
    operation_type: str = "db_operation",
    warn_threshold_ms: float = 1000,
    error_threshold_ms: float = 5000
):
    """
    Decorator to monitor and log operation performance.

    Thresholds:
    - Debug: < warn_threshold_ms (normal operation)
    - Warning: warn_threshold_ms to error_threshold_ms (slow)
    - Error: > error_threshold_ms (very slow, investigate)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            start_time = time.time()

            try:
                return func(*args, **kwargs)
            finally:
                elapsed_ms = (time.time() - start_time) * 1000

                log_context = {
                    'operation': func.__name__,
                    'operation_type': operation_type,
                    'elapsed_ms': elapsed_ms
                }

                if elapsed_ms > error_threshold_ms:
                    logger.error(
                        f"SLOW OPERATION: {func.__name__} took {elapsed_ms:.2f}ms "
                        f"(threshold: {error_threshold_ms}ms)",
                        extra=log_context
                    )
                elif elapsed_ms > warn_threshold_ms:
                    logger.warning(
                        f"Slow operation: {func.__name__} took {elapsed_ms:.2f}ms "
                        f"(threshold: {warn_threshold_ms}ms)",
                        extra=log_context
                    )
                else:
                    logger.debug(
                        f"{func.__name__} completed in {elapsed_ms:.2f}ms",
                        extra=log_context
                    )
        return wrapper
    return decorator


# ============================================================================
# Table Management
# ============================================================================

class DynamoDBTables:
    """
    Singleton for managing DynamoDB table resources.

    Features:
    - Lazy initialization (tables created on first access)
    - Singleton pattern (one instance per application)
    - Automatic table name lookup from environment variables

    Usage:
        tables = DynamoDBTables()
        patterns = tables.recurring_patterns
    """
    _instance: Optional['DynamoDBTables'] = None

    # Table name to environment variable mapping
    TABLE_CONFIGS = {
        'recurring_patterns': 'RECURRING_PATTERNS_TABLE',
        'transactions': 'TRANSACTIONS_TABLE',
    }

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._dynamodb = None
            self._tables: Dict[str, Any] = {}
            self._initialized = True

    def _get_table(self, table_key: str) -> Optional[Any]:
        """Get table resource with lazy initialization."""
        if table_key not in self._tables:
            env_var_name = self.TABLE_CONFIGS.get(table_key)
            if not env_var_name:
                logger.error(f"Unknown table key: {table_key}")
                return None

            table_name = os.environ.get(env_var_name)
            if not table_name:
                logger.warning(
                    f"Environment variable {env_var_name} not set, "
                    f"table '{table_key}' unavailable"
                )
                return None

            if self._dynamodb is None:
                self._dynamodb = boto3.resource('dynamodb')
            self._tables[table_key] = self._dynamodb.Table(table_name)
            logger.info(f"Initialized table: {table_key} ({table_name})")

        return self._tables.get(table_key)

    @property
    def recurring_patterns(self) -> Any:
        """Get recurring patterns table."""
        return self._get_table('recurring_patterns')

    @property
    def transactions(self) -> Any:
        """Get transactions table."""
        return self._get_table('transactions')

    def reinitialize(self):
        """Reinitialize DynamoDB resource (useful for testing)."""
        self._dynamodb = boto3.resource('dynamodb')
        self._tables.clear()
        logger.info("Reinitialized DynamoDB tables")


# Global instance
tables = DynamoDBTables()


def require_table(table: Optional[Any], name: str) -> Any:
    """Return the table or raise StorageError when it is not configured."""
    if table is None:
        logger.error(f"DB: {name} table not initialized")
        raise StorageError(f"{name} table not initialized")
    return table
