from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


def ensure_utc_datetime(value: datetime) -> datetime:
    """datetime 값을 UTC 기준으로 정규화한다.

    pymongo 는 기본적으로 tz-naive datetime 을 돌려주므로, tzinfo 가 없으면 UTC 로 간주한다.
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_object_id(value: Any) -> ObjectId:
    """여러 타입(str, ObjectId 등)을 MongoDB ObjectId 로 변환한다."""

    if isinstance(value, ObjectId):
        return value
    if value is None:
        raise TypeError("ObjectId cannot be None")
    return ObjectId(str(value))


def from_object_id(value: Optional[ObjectId]) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def parse_object_id(value: str) -> ObjectId | None:
    """외부 입력(경로 파라미터 등)을 ObjectId 로 변환한다. 형식이 잘못되면 None."""

    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


PyObjectId = Annotated[ObjectId, BeforeValidator(to_object_id)]
MongoDateTime = Annotated[datetime, BeforeValidator(ensure_utc_datetime)]


class BaseDocument(BaseModel):
    """MongoDB 도큐먼트용 공통 베이스 모델.

    - ObjectId 같은 임의 타입을 허용
    - alias 기반 직렬화(by_alias)를 사용할 수 있도록 한다.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    created_at: MongoDateTime
    updated_at: MongoDateTime

    def to_mongo_record(self) -> dict[str, Any]:
        """MongoDB 저장에 사용할 표준 레코드(dict) 직렬화.

        exclude_none=True 로 _id=None 을 제거해 Mongo가 ObjectId 를 생성하도록 한다.
        """

        return self.model_dump(by_alias=True, exclude_none=True)


class AppendOnlyDocument(BaseModel):
    """한 번 쓰이고 수정되지 않는 도큐먼트(원장 거래 등)의 베이스 모델.

    updated_at 필드를 두지 않아 갱신 대상이 아님을 스키마로 드러낸다.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    created_at: MongoDateTime

    def to_mongo_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def build_document_data_from_domain(
    domain_model: BaseModel, **overrides: Any
) -> dict[str, Any]:
    """도메인 Pydantic 모델을 Mongo 도큐먼트 dict 로 변환하는 공통 유틸.

    - 기본은 ``domain_model.model_dump(by_alias=True)`` 결과를 그대로 사용한다.
    - 금액(Decimal -> 최소 단위 정수)처럼 저장 표현이 다른 필드는 overrides 로 덮어쓴다.
    - 도메인 모델의 문자열 id 는 ``_id`` 로 옮겨 ObjectId 로 변환되도록 한다.
    """

    data = domain_model.model_dump(by_alias=True)
    raw_id = data.pop("id", None)
    if raw_id is not None:
        data["_id"] = raw_id
    data.update(overrides)
    return data


def new_object_id() -> str:
    """저장 전에 식별자가 필요한 도큐먼트(지급 등)를 위해 ObjectId 문자열을 미리 발급한다."""

    return str(ObjectId())
