"""
DynamoDB implementation of the document store.

Single-table layout: the partition key ``pk`` holds the collection name, the
sort key ``sk`` the document id, ``revision`` the document revision and
``document`` the document itself as a map attribute.
"""

import json
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from aws_lambda_powertools.metrics import MetricUnit
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from prodigy_hub.dal import REVISION_KEY, BaseDocumentStore, ConditionalCheckFailedError, DALError, WriteRequest
from prodigy_hub.handlers.utils.errors import ExternalServiceError
from prodigy_hub.handlers.utils.observability import logger, metrics, tracer


def _to_dynamodb(value: Any) -> Any:
    # DynamoDB rejects floats
    return json.loads(json.dumps(value, default=str), parse_float=Decimal)


def _from_dynamodb(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {key: _from_dynamodb(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_from_dynamodb(item) for item in value]
    return value


class DynamoDBDocumentStore(BaseDocumentStore):
    """Document store backed by a single DynamoDB table."""

    def __init__(
        self,
        table_name: str,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        """
        Initialize DynamoDB document store.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region name
            endpoint_url: DynamoDB endpoint URL (for local testing)
        """
        self.table_name = table_name

        session_config = {}
        if region_name:
            session_config['region_name'] = region_name
        if endpoint_url:
            session_config['endpoint_url'] = endpoint_url

        self.dynamodb = boto3.resource('dynamodb', **session_config)
        self.table = self.dynamodb.Table(table_name)
        # the resource's client accepts plain Python types
        self.client = self.dynamodb.meta.client

        logger.info("DynamoDB document store initialized", extra={
            "table_name": table_name,
            "region_name": region_name,
            "endpoint_url": endpoint_url,
        })

    def _handle_dynamodb_errors(self, operation: str, collection: str):
        """Decorator mapping DynamoDB errors onto DAL errors."""

        def decorator(func):
            def wrapper(*args, **kwargs):
                operation_start = time.time()

                try:
                    result = func(*args, **kwargs)

                    operation_duration = (time.time() - operation_start) * 1000
                    metrics.add_metric(name=f"DynamoDB{operation}Duration", unit=MetricUnit.Milliseconds,
                                       value=operation_duration)
                    tracer.put_annotation("dynamodb_operation", operation)

                    return result

                except ClientError as e:
                    error_code = e.response['Error']['Code']
                    error_message = e.response['Error']['Message']

                    metrics.add_metric(name=f"DynamoDB{operation}Error", unit=MetricUnit.Count, value=1)

                    if error_code == 'ConditionalCheckFailedException':
                        raise ConditionalCheckFailedError(
                            collection=collection,
                            condition="document revision check failed",
                        ) from e

                    if error_code == 'TransactionCanceledException':
                        reasons = [reason.get('Code') for reason in e.response.get('CancellationReasons', [])]
                        if not reasons or 'ConditionalCheckFailed' in reasons:
                            raise ConditionalCheckFailedError(
                                collection=collection,
                                condition=f"transaction cancelled: {reasons}",
                            ) from e

                    logger.error(f"DynamoDB {operation} error", extra={
                        "error_code": error_code,
                        "error_message": error_message,
                        "table_name": self.table_name,
                        "collection": collection,
                    })

                    if error_code == 'ResourceNotFoundException':
                        raise DALError(
                            message=f"Table {self.table_name} not found",
                            operation=operation,
                            collection=collection,
                            error_code="TABLE_NOT_FOUND",
                        ) from e
                    if error_code == 'ProvisionedThroughputExceededException':
                        raise DALError(
                            message="DynamoDB throughput exceeded",
                            operation=operation,
                            collection=collection,
                            error_code="THROUGHPUT_EXCEEDED",
                            retry_after=60,
                        ) from e
                    if error_code in ('ThrottlingException', 'TransactionConflictException'):
                        raise DALError(
                            message=f"DynamoDB request throttled: {error_message}",
                            operation=operation,
                            collection=collection,
                            error_code="THROTTLING_ERROR",
                            retry_after=30,
                        ) from e
                    raise DALError(
                        message=f"DynamoDB error: {error_message}",
                        operation=operation,
                        collection=collection,
                        error_code=f"DYNAMODB_{error_code}",
                    ) from e

                except BotoCoreError as e:
                    metrics.add_metric(name=f"DynamoDB{operation}Error", unit=MetricUnit.Count, value=1)
                    logger.error(f"DynamoDB connection error during {operation}", extra={
                        "error": str(e),
                        "table_name": self.table_name,
                    })
                    raise ExternalServiceError(
                        message=f"Database connection error: {str(e)}",
                        service_name="DynamoDB",
                        error_code="DATABASE_CONNECTION_ERROR",
                    ) from e

            return wrapper
        return decorator

    @staticmethod
    def _to_document(item: Dict[str, Any]) -> Dict[str, Any]:
        document = _from_dynamodb(item['document'])
        document[REVISION_KEY] = int(item['revision'])
        return document

    def _put_request(self, write: WriteRequest) -> Dict[str, Any]:
        document = {key: value for key, value in write.document.items() if key != REVISION_KEY}
        request: Dict[str, Any] = {
            'TableName': self.table_name,
            'Item': {
                'pk': write.collection,
                'sk': write.document_id,
                'revision': (write.expected_revision or 0) + 1,
                'document': _to_dynamodb(document),
            },
        }
        if write.expected_revision is None:
            request['ConditionExpression'] = 'attribute_not_exists(pk)'
        else:
            request['ConditionExpression'] = '#revision = :expected'
            request['ExpressionAttributeNames'] = {'#revision': 'revision'}
            request['ExpressionAttributeValues'] = {':expected': write.expected_revision}
        return request

    @tracer.capture_method
    def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a document by id with a strongly consistent read.

        Args:
            collection: Collection (resource type) name
            document_id: Document identifier

        Returns:
            The document with its revision, or None if not found

        Raises:
            DALError: If the DynamoDB operation fails
        """

        @self._handle_dynamodb_errors("GetItem", collection)
        def _get_document():
            response = self.table.get_item(Key={'pk': collection, 'sk': document_id}, ConsistentRead=True)
            item = response.get('Item')
            return self._to_document(item) if item else None

        return _get_document()

    @tracer.capture_method
    def list_documents(self, collection: str) -> List[Dict[str, Any]]:
        """
        List all documents of a collection, following DynamoDB pagination.

        Args:
            collection: Collection (resource type) name

        Returns:
            Documents with their revisions

        Raises:
            DALError: If the DynamoDB operation fails
        """

        @self._handle_dynamodb_errors("Query", collection)
        def _list_documents():
            documents = []
            query_kwargs: Dict[str, Any] = {'KeyConditionExpression': Key('pk').eq(collection)}
            while True:
                response = self.table.query(**query_kwargs)
                documents.extend(self._to_document(item) for item in response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    return documents
                query_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

        return _list_documents()

    @tracer.capture_method
    def transact_write(self, writes: List[WriteRequest]) -> List[Dict[str, Any]]:
        """
        Write documents atomically with revision conditions.

        A single write uses PutItem, several writes use TransactWriteItems.

        Args:
            writes: Documents to write with their expected revisions

        Returns:
            The stored documents with their new revisions

        Raises:
            ConditionalCheckFailedError: If a revision condition fails
            DALError: If the DynamoDB operation fails
        """
        requests = [self._put_request(write) for write in writes]
        collection = ','.join(sorted({write.collection for write in writes}))

        @self._handle_dynamodb_errors("TransactWrite" if len(writes) > 1 else "PutItem", collection)
        def _transact_write():
            if len(requests) == 1:
                request = dict(requests[0])
                request.pop('TableName')
                self.table.put_item(**request)
            else:
                self.client.transact_write_items(TransactItems=[{'Put': request} for request in requests])

        _transact_write()

        logger.debug("Documents written", extra={
            "table_name": self.table_name,
            "documents": [(write.collection, write.document_id) for write in writes],
        })

        return [
            {**write.document, REVISION_KEY: (write.expected_revision or 0) + 1}
            for write in writes
        ]

    @tracer.capture_method
    def delete_document(self, collection: str, document_id: str) -> bool:
        """
        Delete a document.

        Args:
            collection: Collection (resource type) name
            document_id: Document identifier

        Returns:
            Whether the document existed

        Raises:
            DALError: If the DynamoDB operation fails
        """

        @self._handle_dynamodb_errors("DeleteItem", collection)
        def _delete_document():
            response = self.table.delete_item(
                Key={'pk': collection, 'sk': document_id},
                ReturnValues='ALL_OLD',
            )
            return 'Attributes' in response

        return _delete_document()

    def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on the DynamoDB table.

        Returns:
            Health check results
        """
        start_time = time.time()
        try:
            self.table.reload()
            table_status = self.table.table_status
        except (ClientError, BotoCoreError) as e:
            error_data = {
                'status': 'unhealthy',
                'backend': 'dynamodb',
                'table_name': self.table_name,
                'error': str(e),
                'timestamp': datetime.now(timezone.utc).isoformat(),
            }
            logger.error("Health check failed", extra=error_data)
            return error_data

        health_data = {
            'status': 'healthy' if table_status == 'ACTIVE' else 'unhealthy',
            'backend': 'dynamodb',
            'table_name': self.table_name,
            'table_status': table_status,
            'response_time_ms': round((time.time() - start_time) * 1000, 2),
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }
        logger.info("Health check completed", extra=health_data)
        return health_data
