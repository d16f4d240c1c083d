from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from aws_lambda_powertools import Logger
from boto3 import session as boto3_session
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from pydantic import ValidationError

from .config import Settings
from .models import ROLE_ADMIN, ROLE_USER, UserProfile, coordinate_field
from .pins import MapPin

logger = Logger(service="farmwatch")


def _decimalize(value: Any) -> Any:
    """Recursively convert floats to Decimal for DynamoDB compatibility."""
    if isinstance(value, float):
        # Use string constructor to avoid binary float artifacts
        return Decimal(str(value))
    if isinstance(value, Mapping):
        return {k: _decimalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_decimalize(v) for v in value)
    return value


def _plain(value: Any) -> Any:
    """Convert DynamoDB Decimals back to int or float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class UserStore:
    """User profiles in a DynamoDB table keyed by `uid`.

    Construct once per process and pass it to whatever needs profile access.
    """

    def __init__(self, table_name: str, ddb: Any) -> None:
        self.table_name = table_name
        self._table = ddb.Table(table_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "UserStore":
        sess = boto3_session.Session(region_name=settings.aws_region) if settings.aws_region else boto3_session.Session()
        return cls(settings.users_table, sess.resource("dynamodb"))

    def _not_found(self, e: ClientError) -> RuntimeError | None:
        code = e.response.get("Error", {}).get("Code")
        if code == "ResourceNotFoundException":
            return RuntimeError(
                f"DynamoDB table not found. Ensure USERS_TABLE is set to the actual physical table name. USERS_TABLE='{self.table_name}'."
            )
        return None

    def _to_profile(self, item: Mapping[str, Any]) -> UserProfile | None:
        try:
            return UserProfile.model_validate(_plain(item))
        except ValidationError:
            logger.warning("invalid_user_profile", uid=str(item.get("uid")))
            return None

    def get_user(self, uid: str) -> UserProfile | None:
        try:
            resp = self._table.get_item(Key={"uid": uid})
        except ClientError as e:
            err = self._not_found(e)
            if err:
                raise err from e
            raise
        item = resp.get("Item")
        if not item:
            return None
        return self._to_profile(item)

    def _scan(self, **kwargs: Any) -> list[UserProfile]:
        items: list[dict[str, Any]] = []
        try:
            while True:
                resp = self._table.scan(**kwargs)
                items.extend(resp.get("Items", []))
                lek = resp.get("LastEvaluatedKey")
                if not lek:
                    break
                kwargs["ExclusiveStartKey"] = lek
        except ClientError as e:
            err = self._not_found(e)
            if err:
                raise err from e
            raise
        profiles = [p for p in (self._to_profile(it) for it in items) if p is not None]
        return sorted(profiles, key=lambda p: p.display_name.lower())

    def list_users(self) -> list[UserProfile]:
        return self._scan()

    def list_users_by_role(self, role: str) -> list[UserProfile]:
        if role not in (ROLE_USER, ROLE_ADMIN):
            raise ValueError(f"Unknown role: {role}")
        return self._scan(FilterExpression=Attr("status").eq(role))

    def create_user(self, profile: UserProfile) -> None:
        """Write a new profile; fails with ConditionalCheckFailedException if the uid exists."""
        self._table.put_item(
            Item=_decimalize(profile.model_dump(mode="json")),
            ConditionExpression="attribute_not_exists(#u)",
            ExpressionAttributeNames={"#u": "uid"},
        )

    def update_user(self, uid: str, changes: Mapping[str, Any]) -> None:
        fields = {k: v for k, v in changes.items() if k != "uid"}
        if not fields:
            return
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        assignments: list[str] = []
        for i, (key, value) in enumerate(fields.items()):
            names[f"#k{i}"] = key
            values[f":v{i}"] = _decimalize(value)
            assignments.append(f"#k{i} = :v{i}")
        try:
            self._table.update_item(
                Key={"uid": uid},
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression="attribute_exists(#uid)",
                ExpressionAttributeNames={**names, "#uid": "uid"},
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            err = self._not_found(e)
            if err:
                raise err from e
            raise
        logger.info("user_updated", uid=uid, fields=sorted(fields))

    def save_pin_positions(self, uid: str, pins: Iterable[MapPin]) -> None:
        changes: dict[str, float] = {}
        for pin in pins:
            if pin.uid != uid:
                continue
            changes[coordinate_field("x", pin.place_name, pin.pole_number)] = round(pin.x, 2)
            changes[coordinate_field("y", pin.place_name, pin.pole_number)] = round(pin.y, 2)
        self.update_user(uid, changes)
