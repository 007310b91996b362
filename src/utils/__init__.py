"""
Utils package.

- All persisted timestamps are epoch milliseconds (UTC).
- Calendar dates (transaction and pattern dates) are ``datetime.date`` in
  memory and ISO strings in DynamoDB.
- Persisted models implement ``to_dynamodb_item()`` and
  ``from_dynamodb_item(data)``.
"""
