from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Dict

class BaseSchema(BaseModel):
    """camelCase on the wire and in the store, snake_case in Python."""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

class DocumentModel(BaseSchema):
    id: str = ""

    @classmethod
    def from_document(cls, doc):
        return cls.model_validate({**doc.data, "id": doc.id})

    def to_fields(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)
