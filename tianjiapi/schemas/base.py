"""요청 스키마 공통 베이스

정규 와이어 스키마는 snake_case 하나다. 구 클라이언트가 보내는 camelCase 키는
이 베이스 한 곳에서만 별칭으로 받아들인다. 응답은 항상 snake_case 로 직렬화된다.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )
