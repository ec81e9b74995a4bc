from abc import ABC
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy.orm import Session

T = TypeVar("T")
SchemaType = TypeVar("SchemaType", bound=BaseModel)


class BaseRepository(Generic[T, SchemaType], ABC):
    """모든 리포지토리의 베이스 클래스

    리포지토리는 flush 까지만 하고 commit 하지 않는다.
    트랜잭션 경계는 서비스의 transaction_scope 가 소유한다.
    """

    def __init__(
        self, model_class: Type[T], schema_class: Type[SchemaType], db: Session
    ):
        self.model_class = model_class
        self.schema_class = schema_class
        self.db = db

    def to_schema(self, model_instance: Any) -> Optional[SchemaType]:
        """ORM 인스턴스를 응답 스키마로 변환"""
        if model_instance is None:
            return None
        return self.schema_class.model_validate(model_instance)

    def get_model(self, id: Any) -> Optional[T]:
        """ID로 ORM 인스턴스 조회 (잠금 없음)"""
        return self.db.get(self.model_class, id, populate_existing=True)

    def lock_by_id(self, id: Any) -> Optional[T]:
        """SELECT ... FOR UPDATE 로 행을 잠그고 최신 값으로 다시 읽는다

        populate_existing 으로 세션에 남아 있던 값 대신 잠금 시점의 값을 사용한다.
        """
        return (
            self.db.query(self.model_class)
            .filter(getattr(self.model_class, "id") == id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def add(self, instance: T) -> T:
        """인스턴스 추가 후 flush - 제약 위반은 여기서 IntegrityError 로 드러난다"""
        self.db.add(instance)
        self.db.flush()
        return instance

    def create(self, **kwargs) -> T:
        return self.add(self.model_class(**kwargs))

    def exists(self, filters: Dict[str, Any]) -> bool:
        query = self.db.query(self.model_class)
        for key, value in filters.items():
            query = query.filter(getattr(self.model_class, key) == value)
        return query.first() is not None
