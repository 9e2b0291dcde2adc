import boto3
from typing import Optional, Dict, Any, List, Tuple
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError
from app.settings import Settings, settings as default_settings
from app.exceptions import StorageError, ImageNotFoundException
from app.image_service.models import ImageRecord
import logging

log = logging.getLogger(__name__)

SCOPE_INDEX = "ScopeIndex"
CREATED_INDEX = "CreatedIndex"
# Constant partition of CreatedIndex, so unscoped listings can be read in order
RECORD_TYPE = "image"

# -------------------------
# DynamoDB Service
# -------------------------
class DynamoDBService:
    def __init__(self, settings: Settings = default_settings):
        self.table_name = settings.dynamodb_table
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.resource = session.resource("dynamodb", **kwargs)
        log.info("Initialized DynamoDB resource")

        # Ensure table exists at initialization
        self.ensure_table()
        self.table = self.resource.Table(self.table_name)

    # Refer here: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb/client/create_table.html
    def ensure_table(self):
        try:
            table = self.resource.Table(self.table_name)
            table.load()
        except ClientError:
            table = self.resource.create_table(
                TableName=self.table_name,
                KeySchema=[{"AttributeName": "image_id", "KeyType": "HASH"}],
                AttributeDefinitions=[
                    {"AttributeName": "image_id", "AttributeType": "S"},
                    {"AttributeName": "scope_id", "AttributeType": "S"},
                    {"AttributeName": "created_at", "AttributeType": "S"},
                    {"AttributeName": "record_type", "AttributeType": "S"},
                ],
                GlobalSecondaryIndexes=[
                    {
                        "IndexName": SCOPE_INDEX,
                        "KeySchema": [
                            {"AttributeName": "scope_id", "KeyType": "HASH"},
                            {"AttributeName": "created_at", "KeyType": "RANGE"},
                        ],
                        "Projection": {"ProjectionType": "ALL"},
                        "ProvisionedThroughput": {"ReadCapacityUnits": 5, "WriteCapacityUnits": 5},
                    },
                    {
                        "IndexName": CREATED_INDEX,
                        "KeySchema": [
                            {"AttributeName": "record_type", "KeyType": "HASH"},
                            {"AttributeName": "created_at", "KeyType": "RANGE"},
                        ],
                        "Projection": {"ProjectionType": "ALL"},
                        "ProvisionedThroughput": {"ReadCapacityUnits": 5, "WriteCapacityUnits": 5},
                    },
                ],
                ProvisionedThroughput={"ReadCapacityUnits": 5, "WriteCapacityUnits": 5},
            )
            table.wait_until_exists()
            log.info("Created table %s", self.table_name)

    def create(self, original_path: str, processed_path: str, scope: Optional[str] = None) -> ImageRecord:
        record = ImageRecord(
            original_path=original_path,
            processed_path=processed_path,
            scope_id=scope,
        )
        try:
            self.table.put_item(
                Item={**record.to_item(), "record_type": RECORD_TYPE},
                ConditionExpression=Attr("image_id").not_exists(),
            )
        except (BotoCoreError, ClientError) as e:
            log.error("DynamoDB create failed: %s", e)
            raise StorageError(f"Failed to create image record: {e}")
        log.debug("Inserted metadata %s", record.image_id)
        return record

    def list_page(
        self,
        scope: Optional[str] = None,
        limit: Optional[int] = None,
        after: Optional[Tuple[str, str]] = None,
    ) -> Tuple[List[ImageRecord], bool]:
        """
            Records newest first, read from ScopeIndex when scoped and from
            CreatedIndex otherwise. `after` is the (created_at, image_id) of
            the last record already seen. Reads at most limit + 1 items and
            reports whether more remain.
        """
        if scope:
            kwargs = {"IndexName": SCOPE_INDEX, "KeyConditionExpression": Key("scope_id").eq(scope)}
            partition = {"scope_id": scope}
        else:
            kwargs = {"IndexName": CREATED_INDEX, "KeyConditionExpression": Key("record_type").eq(RECORD_TYPE)}
            partition = {"record_type": RECORD_TYPE}
        kwargs["ScanIndexForward"] = False
        if after:
            created_at, image_id = after
            kwargs["ExclusiveStartKey"] = {"image_id": image_id, "created_at": created_at, **partition}

        wanted = None if limit is None else limit + 1
        items: List[Dict[str, Any]] = []
        try:
            while wanted is None or len(items) < wanted:
                if wanted is not None:
                    kwargs["Limit"] = wanted - len(items)
                resp = self.table.query(**kwargs)
                items.extend(resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as e:
            log.error("DynamoDB list failed: %s", e)
            raise StorageError(f"Failed to fetch images: {e}")

        log.debug("Fetched %d records%s", len(items), f" for scope {scope}" if scope else "")
        records = [ImageRecord.from_item(it) for it in items]
        has_more = limit is not None and len(records) > limit
        return records[:limit], has_more

    def list(self, scope: Optional[str] = None) -> List[ImageRecord]:
        """All records, newest first."""
        records, _ = self.list_page(scope)
        return records

    def get_by_id(self, image_id: str) -> ImageRecord:
        try:
            resp = self.table.get_item(Key={"image_id": image_id})
        except (BotoCoreError, ClientError) as e:
            log.error("DynamoDB get_by_id failed: %s", e)
            raise StorageError(f"Failed to get image metadata: {e}")
        item = resp.get("Item")
        if not item:
            raise ImageNotFoundException(image_id)
        return ImageRecord.from_item(item)

    def delete(self, image_id: str):
        """Removes the row. A missing id raises ImageNotFoundException."""
        try:
            self.table.delete_item(
                Key={"image_id": image_id},
                ConditionExpression=Attr("image_id").exists(),
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise ImageNotFoundException(image_id)
            log.error("DynamoDB delete failed: %s", e)
            raise StorageError(f"Failed to delete image metadata: {e}")
        except BotoCoreError as e:
            log.error("DynamoDB delete failed: %s", e)
            raise StorageError(f"Failed to delete image metadata: {e}")
        log.debug("Deleted metadata %s", image_id)

    def delete_by_scope(self, scope: str) -> List[ImageRecord]:
        records = self.list(scope)
        try:
            with self.table.batch_writer() as batch:
                for record in records:
                    batch.delete_item(Key={"image_id": record.image_id})
        except (BotoCoreError, ClientError) as e:
            log.error("DynamoDB delete_by_scope failed: %s", e)
            raise StorageError(f"Failed to delete images for scope {scope}: {e}")
        log.info("Deleted %d records for scope %s", len(records), scope)
        return records

    def close(self):
        log.info("Closed DynamoDB resource")
