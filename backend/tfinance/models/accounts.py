from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class BankAccountCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(default="", validation_alias=AliasChoices("name", "Name"))


class BankAccountItem(BaseModel):
    id: int
    name: str
    balance: float


class BankAccountCreateResponse(BaseModel):
    ok: bool = True
    id: int
