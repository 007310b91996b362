"""
Unit tests for recurring pattern and transaction database operations.

Tests cover:
- Conditional creates and ConflictError on a taken key
- Tracking and status writes touching only their own attributes
- Space-scoped lookups and listing filters
- Pagination and throttling retries
- Error translation to StorageError
"""

import logging
import pytest
import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch
from botocore.exceptions import ClientError

from models.recurring_pattern import PatternStatus
from services.recurring_patterns.exceptions import ConflictError, StorageError
from utils.db.recurring_patterns import (
    DynamoDBPatternStore,
    create_pattern,
    delete_pattern,
    find_pattern_by_account_and_key,
    get_pattern,
    list_patterns_by_space,
    list_space_patterns,
    update_pattern_status,
    update_pattern_tracking,
    upsert_pattern,
)
from utils.db.base import DynamoDBTables
from utils.db.transactions import DynamoDBTransactionSource, list_space_transactions
from services.recurring_patterns.pattern_service import RecurringPatternService
from tests.fixtures.recurring_pattern_fixtures import InMemoryPatternStore, make_pattern, netflix_monthly


def client_error(code: str, operation: str = 'PutItem') -> ClientError:
    return ClientError({'Error': {'Code': code, 'Message': f'{code} happened'}}, operation)


@pytest.fixture
def mock_tables():
    """Mock DynamoDB tables."""
    with patch('utils.db.recurring_patterns.tables') as mock:
        mock.recurring_patterns = MagicMock()
        yield mock


@pytest.fixture
def table(mock_tables):
    return mock_tables.recurring_patterns


class TestCreatePattern:

    def test_create_is_conditional(self, table):
        pattern = make_pattern()

        result = create_pattern(pattern)

        assert result is pattern
        kwargs = table.put_item.call_args[1]
        assert kwargs['Item']['accountId'] == "acct-1"
        assert kwargs['Item']['merchantKey'] == "netflix com"
        assert 'ConditionExpression' in kwargs

    def test_taken_key_raises_conflict(self, table):
        table.put_item.side_effect = client_error('ConditionalCheckFailedException')
        with pytest.raises(ConflictError):
            create_pattern(make_pattern())

    def test_other_client_error_raises_storage_error(self, table):
        table.put_item.side_effect = client_error('ResourceNotFoundException')
        with pytest.raises(StorageError) as exc_info:
            create_pattern(make_pattern())
        assert not isinstance(exc_info.value, ConflictError)

    @patch('utils.db.base.time.sleep')
    def test_throttling_is_retried(self, mock_sleep, table):
        table.put_item.side_effect = [client_error('ProvisionedThroughputExceededException'), {}]
        create_pattern(make_pattern())
        assert table.put_item.call_count == 2
        mock_sleep.assert_called_once()

    @patch('utils.db.base.time.sleep')
    def test_persistent_throttling_gives_up(self, mock_sleep, table):
        table.put_item.side_effect = client_error('ThrottlingException')
        with pytest.raises(StorageError):
            create_pattern(make_pattern())
        assert table.put_item.call_count == 3

    def test_table_not_initialized(self):
        with patch('utils.db.recurring_patterns.tables') as mock:
            mock.recurring_patterns = None
            with pytest.raises(StorageError, match="not initialized"):
                create_pattern(make_pattern())

    def test_upsert_is_unconditional(self, table):
        upsert_pattern(make_pattern())
        assert 'ConditionExpression' not in table.put_item.call_args[1]


class TestPartialUpdates:

    def test_update_tracking_is_conditional_on_tracked_status(self, table):
        pattern = make_pattern(PatternStatus.CONFIRMED, linked=[])

        update_pattern_tracking(pattern)

        kwargs = table.update_item.call_args[1]
        assert kwargs['Key'] == {'accountId': "acct-1", 'merchantKey': "netflix com"}
        assert kwargs['ConditionExpression'] == "#cond_status IN (:cond_detected, :cond_confirmed)"
        assert kwargs['ExpressionAttributeNames']['#cond_status'] == 'status'
        assert kwargs['ExpressionAttributeValues'][':cond_detected'] == 'detected'
        assert kwargs['ExpressionAttributeValues'][':cond_confirmed'] == 'confirmed'
        # Tracking writes never touch status or user settings
        assert ':status' not in kwargs['ExpressionAttributeValues']
        assert ':categoryId' not in kwargs['ExpressionAttributeValues']
        assert ':lastSeenDate' in kwargs['ExpressionAttributeValues']
        assert 'REMOVE #linkedTransactionIds' in kwargs['UpdateExpression']

    def test_update_tracking_conflict(self, table):
        table.update_item.side_effect = client_error('ConditionalCheckFailedException', 'UpdateItem')
        with pytest.raises(ConflictError):
            update_pattern_tracking(make_pattern())

    def test_update_status_writes_status_only(self, table):
        pattern = make_pattern(PatternStatus.DISMISSED)
        pattern.dismissed_at = 1717000000000

        update_pattern_status(pattern)

        kwargs = table.update_item.call_args[1]
        values = kwargs['ExpressionAttributeValues']
        assert values[':status'] == 'dismissed'
        assert values[':dismissedAt'] == 1717000000000
        assert ':expectedAmount' not in values
        assert kwargs['ConditionExpression'] == "attribute_exists(#cond_status)"
        assert 'REMOVE #confirmedAt' in kwargs['UpdateExpression']

    def test_delete(self, table):
        delete_pattern(make_pattern())
        table.delete_item.assert_called_once_with(Key={'accountId': "acct-1", 'merchantKey': "netflix com"})


class TestReads:

    def test_find_by_account_and_key(self, table):
        pattern = make_pattern(linked=["t-1"])
        table.get_item.return_value = {'Item': pattern.to_dynamodb_item()}

        result = find_pattern_by_account_and_key("acct-1", "netflix com")

        assert result == pattern
        table.get_item.assert_called_once_with(Key={'accountId': "acct-1", 'merchantKey': "netflix com"})

    def test_find_missing(self, table):
        table.get_item.return_value = {}
        assert find_pattern_by_account_and_key("acct-1", "hulu") is None

    def test_get_pattern_scoped_to_space(self, table):
        pattern = make_pattern(space_id="space-1")
        table.query.return_value = {'Items': [pattern.to_dynamodb_item()]}

        assert get_pattern("space-1", pattern.pattern_id) == pattern
        assert get_pattern("space-2", pattern.pattern_id) is None
        assert table.query.call_args[1]['IndexName'] == 'PatternIdIndex'

    def test_corrupt_item_raises_storage_error(self, table):
        table.get_item.return_value = {'Item': {'accountId': "acct-1", 'merchantKey': "x"}}
        with pytest.raises(StorageError):
            find_pattern_by_account_and_key("acct-1", "x")

    def test_list_follows_pagination(self, table):
        first, second = make_pattern(merchant_key="a"), make_pattern(merchant_key="b")
        table.query.side_effect = [
            {'Items': [first.to_dynamodb_item()], 'LastEvaluatedKey': {'accountId': "acct-1"}},
            {'Items': [second.to_dynamodb_item()]},
        ]

        patterns = list_space_patterns("space-1")

        assert [p.merchant_key for p in patterns] == ["a", "b"]
        assert table.query.call_args_list[1][1]['ExclusiveStartKey'] == {'accountId': "acct-1"}

    def test_list_by_space_filters_and_orders(self, table):
        items = [
            make_pattern(PatternStatus.CONFIRMED, merchant_key="late", last_seen=date(2024, 5, 20)),
            make_pattern(PatternStatus.PAUSED, merchant_key="early", last_seen=date(2024, 5, 1)),
            make_pattern(PatternStatus.DETECTED, merchant_key="detected", last_seen=date(2024, 5, 10)),
            make_pattern(PatternStatus.DISMISSED, merchant_key="dismissed"),
            make_pattern(PatternStatus.CONFIRMED, merchant_key="undated", last_seen=None),
        ]
        table.query.return_value = {'Items': [p.to_dynamodb_item() for p in items]}

        default = list_patterns_by_space("space-1")
        with_detected = list_patterns_by_space("space-1", include_detected=True)
        dismissed = list_patterns_by_space("space-1", status=PatternStatus.DISMISSED)

        assert [p.merchant_key for p in default] == ["early", "late", "undated"]
        assert [p.merchant_key for p in with_detected] == ["early", "detected", "late", "undated"]
        assert [p.merchant_key for p in dismissed] == ["dismissed"]


class TestDynamoDBPatternStore:

    def test_store_delegates(self, table):
        store = DynamoDBPatternStore()
        pattern = make_pattern()
        table.query.return_value = {'Items': []}

        store.create(pattern)
        store.update_tracking(pattern)
        store.update_status(pattern)

        assert store.list_all("space-1") == []
        assert store.get("space-1", uuid.uuid4()) is None
        assert table.put_item.call_count == 1
        assert table.update_item.call_count == 2


class TestDynamoDBTables:

    def test_tables_resolved_lazily_from_environment(self, monkeypatch):
        monkeypatch.setenv('RECURRING_PATTERNS_TABLE', 'patterns-test')
        monkeypatch.delenv('TRANSACTIONS_TABLE', raising=False)

        with patch('utils.db.base.boto3.resource') as resource:
            db_tables = DynamoDBTables()
            db_tables.reinitialize()

            assert db_tables.recurring_patterns is resource.return_value.Table.return_value
            resource.return_value.Table.assert_called_once_with('patterns-test')
            assert db_tables.transactions is None

            db_tables.reinitialize()
            assert db_tables._tables == {}


class TestTransactions:

    @pytest.fixture
    def transactions_table(self):
        with patch('utils.db.transactions.tables') as mock:
            mock.transactions = MagicMock()
            yield mock.transactions

    def test_list_space_transactions(self, transactions_table):
        transactions_table.query.return_value = {'Items': [
            {'transactionId': "t-2", 'accountId': "acct-1", 'spaceId': "space-1",
             'date': Decimal(1710504000000), 'amount': Decimal("-15.99"), 'description': "NETFLIX"},
            {'transactionId': "t-1", 'accountId': "acct-1", 'spaceId': "space-1",
             'date': Decimal(1710504000000), 'amount': Decimal("-4.50"), 'description': "COFFEE",
             'userId': "u-1"},
        ]}

        transactions = DynamoDBTransactionSource().list_transactions("space-1")

        assert [t.transaction_id for t in transactions] == ["t-1", "t-2"]
        kwargs = transactions_table.query.call_args[1]
        assert kwargs['IndexName'] == 'SpaceIdIndex'
        assert 'FilterExpression' not in kwargs

    def test_malformed_item_is_skipped(self, transactions_table, caplog):
        good = {'transactionId': "t-1", 'accountId': "acct-1", 'spaceId': "space-1",
                'date': Decimal(1710504000000), 'amount': Decimal("-15.99"), 'description': "NETFLIX"}
        bad = dict(good, transactionId="t-bad", date="not-a-date")
        transactions_table.query.return_value = {'Items': [bad, good]}

        with caplog.at_level(logging.WARNING, logger="utils.db.transactions"):
            transactions = list_space_transactions("space-1")

        assert [t.transaction_id for t in transactions] == ["t-1"]
        assert any("t-bad" in r.getMessage() for r in caplog.records)

    def test_detection_survives_malformed_item(self, transactions_table):
        items = [
            {'transactionId': t.transaction_id, 'accountId': t.account_id, 'spaceId': "space-1",
             'date': t.date.isoformat(), 'amount': t.amount, 'description': t.description}
            for t in netflix_monthly(6)
        ]
        items.append(dict(items[0], transactionId="nflx-bad", date="not-a-date"))
        transactions_table.query.return_value = {'Items': items}
        service = RecurringPatternService(store=InMemoryPatternStore(), source=DynamoDBTransactionSource())

        result = service.run_detection("space-1")

        assert result.total == 1
        assert result.created == 1
        assert "nflx-bad" not in result.detected[0].linked_transaction_ids

    def test_account_filter(self, transactions_table):
        transactions_table.query.return_value = {'Items': []}
        list_space_transactions("space-1", account_id="acct-1")
        assert 'FilterExpression' in transactions_table.query.call_args[1]

    def test_table_not_initialized(self):
        with patch('utils.db.transactions.tables') as mock:
            mock.transactions = None
            with pytest.raises(StorageError):
                list_space_transactions("space-1")
